"""
Promotion lifecycle and vote aggregation.

PromotionStore owns promotion rows: create, read (enriched), list, delete.
VoteAggregator owns vote rows and the derived upvote/downvote counters.

Counters are always recomputed from the full vote set in one UPDATE after
each vote upsert, never incremented. Any successful submission therefore
leaves them exact, whatever happened to earlier submissions.
"""
from datetime import datetime, timedelta, timezone
from typing import NamedTuple, Optional

from sqlalchemy import and_, delete, desc, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from app.core.errors import InvalidRequest, ResourceNotFound
from app.features.permissions.models import Role
from app.features.promotions.models import Promotion, PromotionStatus, PromotionVote
from app.features.promotions.schemas import (
    PromotionComment,
    PromotionDetail,
    PromotionSort,
    PromotionSummary,
    VoterIdentity,
)
from app.features.users.identity import IdentityLookup, UNKNOWN_IDENTITY, resolve_identities
from app.utils import get_logger


log = get_logger(__name__)

TRENDING_WINDOW = timedelta(hours=24)


class VoteTally(NamedTuple):
    upvotes: int
    downvotes: int


def _require_text(value: Optional[str], message: str) -> str:
    if value is None or not value.strip():
        raise InvalidRequest(message)
    return value


class PromotionStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        workspace_id: int,
        recommender_id: int,
        target_user_id: int,
        current_role_id: str,
        recommended_role_id: str,
        reason: str,
    ) -> Promotion:
        """
        Record a recommendation.

        Only field presence is checked. Neither user has to hold either role:
        this records an opinion, it does not change any assignment.
        """
        _require_text(reason, "Reason is required")
        _require_text(current_role_id, "Current role is required")
        _require_text(recommended_role_id, "Recommended role is required")

        promotion = Promotion(
            workspace_id=workspace_id,
            recommender_id=recommender_id,
            target_user_id=target_user_id,
            current_role_id=current_role_id,
            recommended_role_id=recommended_role_id,
            reason=reason.strip(),
            upvotes=0,
            downvotes=0,
            status=PromotionStatus.PENDING.value,
        )
        self.db.add(promotion)
        await self.db.commit()
        await self.db.refresh(promotion)
        log.info("Promotion %s created in workspace %s by %s", promotion.id, workspace_id, recommender_id)
        return promotion

    async def find(self, workspace_id: int, promotion_id: str, for_update: bool = False) -> Optional[Promotion]:
        stmt = select(Promotion).where(
            Promotion.id == promotion_id,
            Promotion.workspace_id == workspace_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def get(self, workspace_id: int, promotion_id: str) -> Promotion:
        promotion = await self.find(workspace_id, promotion_id)
        if promotion is None:
            raise ResourceNotFound()
        return promotion

    async def votes_for(self, promotion_id: str) -> list[PromotionVote]:
        """Votes newest first; insertion order breaks timestamp ties."""
        result = await self.db.execute(
            select(PromotionVote)
            .where(PromotionVote.promotion_id == promotion_id)
            .order_by(desc(PromotionVote.created_at), desc(PromotionVote.id))
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    def _with_role_names(self, stmt):
        current_role = aliased(Role)
        recommended_role = aliased(Role)
        return (
            stmt.add_columns(current_role.name, recommended_role.name)
            .outerjoin(current_role, and_(
                current_role.id == Promotion.current_role_id,
                current_role.workspace_id == Promotion.workspace_id,
            ))
            .outerjoin(recommended_role, and_(
                recommended_role.id == Promotion.recommended_role_id,
                recommended_role.workspace_id == Promotion.workspace_id,
            ))
        )

    async def get_detail(self, workspace_id: int, promotion_id: str, lookup: IdentityLookup) -> PromotionDetail:
        """Promotion with role names, voter identities and justifications (newest first)."""
        stmt = self._with_role_names(
            select(Promotion).where(
                Promotion.id == promotion_id,
                Promotion.workspace_id == workspace_id,
            )
        ).execution_options(populate_existing=True)
        row = (await self.db.execute(stmt)).first()
        if row is None:
            raise ResourceNotFound()
        promotion, current_role_name, recommended_role_name = row

        votes = await self.votes_for(promotion.id)
        voter_ids = list(dict.fromkeys(vote.voter_id for vote in votes))
        identities = await resolve_identities(
            lookup, [promotion.recommender_id, promotion.target_user_id, *voter_ids]
        )

        def identity(user_id: int):
            return identities.get(user_id, UNKNOWN_IDENTITY)

        return PromotionDetail(
            id=promotion.id,
            recommender_id=promotion.recommender_id,
            recommender_name=identity(promotion.recommender_id).username,
            recommender_avatar=identity(promotion.recommender_id).avatar_url,
            target_user_id=promotion.target_user_id,
            target_username=identity(promotion.target_user_id).username,
            target_avatar=identity(promotion.target_user_id).avatar_url,
            current_role=current_role_name or promotion.current_role_id,
            current_role_id=promotion.current_role_id,
            recommended_role=recommended_role_name or promotion.recommended_role_id,
            recommended_role_id=promotion.recommended_role_id,
            reason=promotion.reason,
            upvotes=promotion.upvotes,
            downvotes=promotion.downvotes,
            status=promotion.status,
            created_at=promotion.created_at,
            voters=[
                VoterIdentity(
                    user_id=voter_id,
                    username=identity(voter_id).username,
                    avatar=identity(voter_id).avatar_url,
                )
                for voter_id in voter_ids
            ],
            comments=[
                PromotionComment(
                    id=vote.id,
                    user_id=vote.voter_id,
                    username=identity(vote.voter_id).username,
                    avatar=identity(vote.voter_id).avatar_url,
                    content=vote.justification,
                    is_upvote=vote.is_upvote,
                    created_at=vote.created_at,
                )
                for vote in votes
            ],
        )

    async def list_promotions(
        self,
        workspace_id: int,
        sort: PromotionSort,
        lookup: IdentityLookup,
        skip: int = 0,
        limit: int = 50,
    ) -> list[PromotionSummary]:
        vote_counts = (
            select(PromotionVote.promotion_id, func.count(PromotionVote.id).label("total"))
            .group_by(PromotionVote.promotion_id)
            .subquery()
        )
        cutoff = datetime.now(timezone.utc) - TRENDING_WINDOW
        recent_counts = (
            select(PromotionVote.promotion_id, func.count(PromotionVote.id).label("recent"))
            .where(PromotionVote.updated_at >= cutoff)
            .group_by(PromotionVote.promotion_id)
            .subquery()
        )
        total = func.coalesce(vote_counts.c.total, 0)
        recent = func.coalesce(recent_counts.c.recent, 0)

        stmt = self._with_role_names(
            select(Promotion).where(Promotion.workspace_id == workspace_id)
        )
        stmt = (
            stmt.add_columns(total)
            .outerjoin(vote_counts, vote_counts.c.promotion_id == Promotion.id)
            .outerjoin(recent_counts, recent_counts.c.promotion_id == Promotion.id)
        )

        newest = (desc(Promotion.created_at), desc(Promotion.id))
        if sort == PromotionSort.TOP:
            stmt = stmt.order_by(desc(Promotion.upvotes - Promotion.downvotes), desc(Promotion.upvotes), *newest)
        elif sort == PromotionSort.TRENDING:
            stmt = stmt.order_by(desc(recent), *newest)
        else:
            stmt = stmt.order_by(*newest)

        rows = (await self.db.execute(stmt.offset(skip).limit(limit))).all()
        identities = await resolve_identities(
            lookup,
            [user_id for row in rows for user_id in (row[0].recommender_id, row[0].target_user_id)],
        )

        summaries = []
        for promotion, current_role_name, recommended_role_name, comment_count in rows:
            recommender = identities.get(promotion.recommender_id, UNKNOWN_IDENTITY)
            target = identities.get(promotion.target_user_id, UNKNOWN_IDENTITY)
            summaries.append(PromotionSummary(
                id=promotion.id,
                recommender_id=promotion.recommender_id,
                recommender_name=recommender.username,
                recommender_avatar=recommender.avatar_url,
                target_user_id=promotion.target_user_id,
                target_username=target.username,
                target_avatar=target.avatar_url,
                current_role=current_role_name or promotion.current_role_id,
                recommended_role=recommended_role_name or promotion.recommended_role_id,
                reason=promotion.reason,
                upvotes=promotion.upvotes,
                downvotes=promotion.downvotes,
                comments=int(comment_count),
                status=promotion.status,
                created_at=promotion.created_at,
            ))
        return summaries

    async def delete(self, workspace_id: int, promotion_id: str) -> Promotion:
        """
        Delete a promotion and every vote on it in one transaction.

        Votes are removed explicitly as well as by the FK cascade so no backend
        can leave orphans behind.
        """
        promotion = await self.find(workspace_id, promotion_id, for_update=True)
        if promotion is None:
            raise ResourceNotFound()

        await self.db.execute(
            delete(PromotionVote).where(PromotionVote.promotion_id == promotion_id)
        )
        await self.db.execute(
            delete(Promotion)
            .where(Promotion.id == promotion_id, Promotion.workspace_id == workspace_id)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        log.info("Promotion %s deleted from workspace %s", promotion_id, workspace_id)
        return promotion


class VoteAggregator:
    def __init__(self, db: AsyncSession):
        self.db = db

    def _insert(self):
        if self.db.get_bind().dialect.name == "postgresql":
            return postgresql.insert(PromotionVote)
        return sqlite.insert(PromotionVote)

    async def _upsert_vote(self, promotion_id: str, voter_id: int, is_upvote: bool, justification: str) -> None:
        """Insert the voter's vote or overwrite it in place (last writer wins)."""
        stmt = self._insert().values(
            promotion_id=promotion_id,
            voter_id=voter_id,
            is_upvote=is_upvote,
            justification=justification,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[PromotionVote.promotion_id, PromotionVote.voter_id],
            set_={
                "is_upvote": stmt.excluded.is_upvote,
                "justification": stmt.excluded.justification,
                "updated_at": func.now(),
            },
        )
        await self.db.execute(stmt)

    async def recompute(self, workspace_id: int, promotion_id: str) -> VoteTally:
        """Rewrite the promotion's counters from its current vote set in a single statement."""
        def count_where(flag: bool):
            return (
                select(func.count(PromotionVote.id))
                .where(PromotionVote.promotion_id == promotion_id, PromotionVote.is_upvote == flag)
                .scalar_subquery()
            )

        await self.db.execute(
            update(Promotion)
            .where(Promotion.id == promotion_id, Promotion.workspace_id == workspace_id)
            .values(upvotes=count_where(True), downvotes=count_where(False), updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        row = (await self.db.execute(
            select(Promotion.upvotes, Promotion.downvotes).where(Promotion.id == promotion_id)
        )).one()
        return VoteTally(upvotes=row.upvotes, downvotes=row.downvotes)

    async def submit_vote(
        self,
        workspace_id: int,
        promotion_id: str,
        voter_id: int,
        is_upvote: bool,
        justification: str,
    ) -> VoteTally:
        """
        Record or replace a vote and return the recomputed tallies.

        The promotion row is locked first (FOR UPDATE where supported), which
        serializes concurrent voters on the same promotion. Validation happens
        before anything is written.
        """
        _require_text(justification, "Justification is required")

        promotion = await PromotionStore(self.db).find(workspace_id, promotion_id, for_update=True)
        if promotion is None:
            raise ResourceNotFound()

        try:
            await self._upsert_vote(promotion_id, voter_id, is_upvote, justification)
            tally = await self.recompute(workspace_id, promotion_id)
            await self.db.commit()
        except IntegrityError:
            # Deleted after the lookup; SQLite has no row lock to prevent it
            await self.db.rollback()
            log.info("Promotion %s vanished before vote by %s was written", promotion_id, voter_id)
            raise ResourceNotFound()

        log.info(
            "Vote by %s on promotion %s (%s); tally +%d/-%d",
            voter_id, promotion_id, "up" if is_upvote else "down", tally.upvotes, tally.downvotes
        )
        return tally
