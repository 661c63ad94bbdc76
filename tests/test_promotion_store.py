"""Tests for PromotionStore reads, listing order and deletion."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select
from ulid import ULID

from app.core.errors import InvalidRequest, ResourceNotFound
from app.features.promotions.models import Promotion, PromotionVote
from app.features.promotions.schemas import PromotionSort
from app.features.promotions.service import PromotionStore
from app.features.users.identity import UNKNOWN_IDENTITY
from conftest import WORKSPACE_ID, utcnow


class TestCreate:
    async def test_create_starts_pending_with_zero_tallies(self, db, seed):
        await seed.workspace()
        promotion = await PromotionStore(db).create(
            workspace_id=WORKSPACE_ID,
            recommender_id=1,
            target_user_id=2,
            current_role_id="role-a",
            recommended_role_id="role-b",
            reason="  Runs every session  ",
        )
        assert len(promotion.id) == 26
        assert promotion.status == "pending"
        assert (promotion.upvotes, promotion.downvotes) == (0, 0)
        assert promotion.reason == "Runs every session"

    @pytest.mark.parametrize("field", ["reason", "current_role_id", "recommended_role_id"])
    async def test_blank_fields_rejected(self, db, seed, field):
        await seed.workspace()
        values = dict(
            workspace_id=WORKSPACE_ID,
            recommender_id=1,
            target_user_id=2,
            current_role_id="role-a",
            recommended_role_id="role-b",
            reason="reason",
        )
        values[field] = "   "
        with pytest.raises(InvalidRequest):
            await PromotionStore(db).create(**values)
        assert await db.scalar(select(func.count(Promotion.id))) == 0


class TestGetDetail:
    async def test_missing_promotion(self, db, seed, identities):
        await seed.workspace()
        with pytest.raises(ResourceNotFound):
            await PromotionStore(db).get_detail(WORKSPACE_ID, str(ULID()), identities)

    async def test_other_workspace_is_not_found(self, db, seed, identities):
        await seed.workspace()
        await seed.workspace(group_id=200, name="Other")
        promotion = await seed.promotion(workspace_id=200)
        with pytest.raises(ResourceNotFound):
            await PromotionStore(db).get_detail(WORKSPACE_ID, promotion.id, identities)

    async def test_detail_resolves_names_and_orders_comments(self, db, seed, identities):
        await seed.workspace()
        current = await seed.role("Member")
        recommended = await seed.role("Officer")
        promotion = await seed.promotion(
            recommender_id=1, target_user_id=2,
            current_role_id=current.id, recommended_role_id=recommended.id,
        )
        now = utcnow()
        await seed.vote(promotion.id, 3, True, "first", at=now - timedelta(hours=2))
        await seed.vote(promotion.id, 99, False, "second", at=now - timedelta(hours=1))

        detail = await PromotionStore(db).get_detail(WORKSPACE_ID, promotion.id, identities)

        assert detail.recommender_name == "alice"
        assert detail.recommender_avatar == "https://cdn.example/alice.png"
        assert detail.target_username == "bob"
        assert detail.current_role == "Member"
        assert detail.recommended_role == "Officer"
        assert detail.current_role_id == current.id
        assert [c.content for c in detail.comments] == ["second", "first"]
        assert [v.user_id for v in detail.voters] == [99, 3]
        # Lookup failures degrade to the placeholder identity
        assert detail.comments[0].username == UNKNOWN_IDENTITY.username
        assert detail.comments[0].avatar == ""
        assert detail.comments[1].username == "carol"

    async def test_missing_role_falls_back_to_id(self, db, seed, identities):
        await seed.workspace()
        promotion = await seed.promotion(current_role_id="gone", recommended_role_id="also-gone")
        detail = await PromotionStore(db).get_detail(WORKSPACE_ID, promotion.id, identities)
        assert detail.current_role == "gone"
        assert detail.recommended_role == "also-gone"


class TestListPromotions:
    async def _three(self, seed):
        await seed.workspace()
        now = utcnow()
        oldest = await seed.promotion(reason="oldest", upvotes=2, downvotes=0, created_at=now - timedelta(days=3))
        middle = await seed.promotion(reason="middle", upvotes=3, downvotes=1, created_at=now - timedelta(days=2))
        newest = await seed.promotion(reason="newest", upvotes=0, downvotes=1, created_at=now - timedelta(days=1))
        return oldest, middle, newest

    async def test_new(self, db, seed, identities):
        await self._three(seed)
        rows = await PromotionStore(db).list_promotions(WORKSPACE_ID, PromotionSort.NEW, identities)
        assert [p.reason for p in rows] == ["newest", "middle", "oldest"]

    async def test_top_breaks_net_ties_on_upvotes(self, db, seed, identities):
        await self._three(seed)
        rows = await PromotionStore(db).list_promotions(WORKSPACE_ID, PromotionSort.TOP, identities)
        assert [p.reason for p in rows] == ["middle", "oldest", "newest"]

    async def test_trending_counts_recent_votes_only(self, db, seed, identities):
        oldest, middle, newest = await self._three(seed)
        now = utcnow()
        for voter in (10, 11, 12):
            await seed.vote(middle.id, voter, at=now - timedelta(hours=48))
        await seed.vote(oldest.id, 10, at=now - timedelta(minutes=5))

        rows = await PromotionStore(db).list_promotions(WORKSPACE_ID, PromotionSort.TRENDING, identities)
        assert [p.reason for p in rows] == ["oldest", "newest", "middle"]
        assert {p.reason: p.comments for p in rows} == {"oldest": 1, "middle": 3, "newest": 0}

    async def test_paging_and_workspace_scope(self, db, seed, identities):
        await self._three(seed)
        await seed.workspace(group_id=200, name="Other")
        await seed.promotion(workspace_id=200, reason="elsewhere")

        store = PromotionStore(db)
        page = await store.list_promotions(WORKSPACE_ID, PromotionSort.NEW, identities, skip=1, limit=1)
        assert [p.reason for p in page] == ["middle"]
        everything = await store.list_promotions(WORKSPACE_ID, PromotionSort.NEW, identities)
        assert "elsewhere" not in [p.reason for p in everything]

    async def test_identities_resolved_once_per_user(self, db, seed, identities):
        await self._three(seed)
        await PromotionStore(db).list_promotions(WORKSPACE_ID, PromotionSort.NEW, identities)
        assert sorted(identities.calls) == [1, 2]


class TestDelete:
    async def test_delete_removes_votes(self, db, seed):
        await seed.workspace()
        promotion = await seed.promotion()
        await seed.vote(promotion.id, 3)
        await seed.vote(promotion.id, 4, is_upvote=False)

        await PromotionStore(db).delete(WORKSPACE_ID, promotion.id)

        assert await PromotionStore(db).find(WORKSPACE_ID, promotion.id) is None
        remaining = await db.scalar(
            select(func.count(PromotionVote.id)).where(PromotionVote.promotion_id == promotion.id)
        )
        assert remaining == 0

    async def test_delete_missing(self, db, seed):
        await seed.workspace()
        with pytest.raises(ResourceNotFound):
            await PromotionStore(db).delete(WORKSPACE_ID, str(ULID()))

    async def test_delete_from_other_workspace_is_not_found(self, db, seed):
        await seed.workspace()
        await seed.workspace(group_id=200, name="Other")
        promotion = await seed.promotion(workspace_id=200)
        with pytest.raises(ResourceNotFound):
            await PromotionStore(db).delete(WORKSPACE_ID, promotion.id)
        assert await seed.get_promotion(promotion.id) is not None
