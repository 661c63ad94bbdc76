"""Tests for vote upserts and tally recomputation."""

import pytest
from sqlalchemy import func, select, update
from ulid import ULID

from app.core.database.engine import AsyncSessionLocal
from app.core.errors import InvalidRequest, ResourceNotFound
from app.features.promotions.models import Promotion, PromotionVote
from app.features.promotions.service import PromotionStore, VoteAggregator, VoteTally
from conftest import WORKSPACE_ID


async def vote_rows(db, promotion_id):
    result = await db.execute(
        select(PromotionVote)
        .where(PromotionVote.promotion_id == promotion_id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


class TestSubmitVote:
    async def test_first_vote(self, db, seed):
        await seed.workspace()
        promotion = await seed.promotion()

        tally = await VoteAggregator(db).submit_vote(WORKSPACE_ID, promotion.id, 3, True, "solid work")

        assert tally == VoteTally(upvotes=1, downvotes=0)
        rows = await vote_rows(db, promotion.id)
        assert [(r.voter_id, r.is_upvote, r.justification) for r in rows] == [(3, True, "solid work")]

    async def test_revote_replaces_in_place(self, db, seed):
        await seed.workspace()
        promotion = await seed.promotion()
        aggregator = VoteAggregator(db)

        await aggregator.submit_vote(WORKSPACE_ID, promotion.id, 3, True, "solid work")
        tally = await aggregator.submit_vote(WORKSPACE_ID, promotion.id, 3, False, "reconsidered")

        assert tally == VoteTally(upvotes=0, downvotes=1)
        rows = await vote_rows(db, promotion.id)
        assert len(rows) == 1
        assert rows[0].is_upvote is False
        assert rows[0].justification == "reconsidered"

    async def test_many_submissions_leave_one_row_per_voter(self, db, seed):
        await seed.workspace()
        promotion = await seed.promotion()
        aggregator = VoteAggregator(db)

        for i in range(5):
            await aggregator.submit_vote(WORKSPACE_ID, promotion.id, 3, i % 2 == 0, f"take {i}")
        await aggregator.submit_vote(WORKSPACE_ID, promotion.id, 4, False, "no")
        tally = await aggregator.submit_vote(WORKSPACE_ID, promotion.id, 5, True, "yes")

        assert tally == VoteTally(upvotes=2, downvotes=1)
        rows = {r.voter_id: r for r in await vote_rows(db, promotion.id)}
        assert set(rows) == {3, 4, 5}
        assert rows[3].justification == "take 4"
        assert rows[3].is_upvote is True

    @pytest.mark.parametrize("justification", ["", "   ", "\n\t"])
    async def test_blank_justification_writes_nothing(self, db, seed, justification):
        await seed.workspace()
        promotion = await seed.promotion()

        with pytest.raises(InvalidRequest):
            await VoteAggregator(db).submit_vote(WORKSPACE_ID, promotion.id, 3, True, justification)

        assert await vote_rows(db, promotion.id) == []
        stored = await seed.get_promotion(promotion.id)
        assert (stored.upvotes, stored.downvotes) == (0, 0)

    async def test_missing_promotion(self, db, seed):
        await seed.workspace()
        with pytest.raises(ResourceNotFound):
            await VoteAggregator(db).submit_vote(WORKSPACE_ID, str(ULID()), 3, True, "hi")
        assert await db.scalar(select(func.count(PromotionVote.id))) == 0

    async def test_promotion_deleted_after_lookup(self, db, seed, monkeypatch):
        await seed.workspace()
        promotion = await seed.promotion()
        write_vote = VoteAggregator._upsert_vote

        async def delete_then_write(self, promotion_id, *args):
            async with AsyncSessionLocal() as other:
                await PromotionStore(other).delete(WORKSPACE_ID, promotion_id)
            await write_vote(self, promotion_id, *args)

        monkeypatch.setattr(VoteAggregator, "_upsert_vote", delete_then_write)

        with pytest.raises(ResourceNotFound):
            await VoteAggregator(db).submit_vote(WORKSPACE_ID, promotion.id, 3, True, "late")

        assert await seed.get_promotion(promotion.id) is None
        assert await seed.votes(promotion.id) == []

    async def test_promotion_in_other_workspace(self, db, seed):
        await seed.workspace()
        await seed.workspace(group_id=200, name="Other")
        promotion = await seed.promotion(workspace_id=200)
        with pytest.raises(ResourceNotFound):
            await VoteAggregator(db).submit_vote(WORKSPACE_ID, promotion.id, 3, True, "hi")


class TestRecompute:
    async def test_repairs_drifted_counters(self, db, seed):
        await seed.workspace()
        promotion = await seed.promotion()
        await seed.vote(promotion.id, 3, True)
        await seed.vote(promotion.id, 4, True)
        await seed.vote(promotion.id, 5, False)
        await db.execute(update(Promotion).where(Promotion.id == promotion.id).values(upvotes=40, downvotes=-2))
        await db.commit()

        tally = await VoteAggregator(db).recompute(WORKSPACE_ID, promotion.id)
        await db.commit()

        assert tally == VoteTally(upvotes=2, downvotes=1)
        stored = await seed.get_promotion(promotion.id)
        assert (stored.upvotes, stored.downvotes) == (2, 1)

    async def test_next_vote_repairs_drift(self, db, seed):
        await seed.workspace()
        promotion = await seed.promotion(upvotes=9, downvotes=9)
        await seed.vote(promotion.id, 3, False)

        tally = await VoteAggregator(db).submit_vote(WORKSPACE_ID, promotion.id, 4, True, "agree")
        assert tally == VoteTally(upvotes=1, downvotes=1)
