"""
Promotion recommendation routes.

Every route here sits behind the "promotions" feature toggle. A disabled
toggle answers 404 exactly like a missing promotion.
"""
from typing import Annotated, List
from fastapi import APIRouter, BackgroundTasks, Depends, Path, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db
from app.core.rate_limit import limiter
from app.features.permissions.dependencies import (
    WorkspaceId,
    audit_kwargs,
    record_audit,
    require_feature_member,
    require_feature_permission,
)
from app.features.permissions.evaluation import Membership
from app.features.permissions.vocabulary import ADMIN, MANAGE_PROMOTIONS
from app.features.promotions.schemas import (
    PromotionCreate,
    PromotionDetail,
    PromotionResponse,
    PromotionSort,
    PromotionSummary,
    VoteCreate,
    VoteResult,
)
from app.features.promotions.service import PromotionStore, VoteAggregator
from app.features.settings.store import PROMOTIONS_FEATURE
from app.features.users.identity import IdentityLookup, get_identity_lookup
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()

# Tokens that allow deleting a promotion; owner roles and admins bypass
DELETE_PERMISSIONS = (MANAGE_PROMOTIONS, ADMIN)

PromotionsMember = Annotated[Membership, Depends(require_feature_member(PROMOTIONS_FEATURE))]
PromotionsManager = Annotated[Membership, Depends(require_feature_permission(PROMOTIONS_FEATURE, *DELETE_PERMISSIONS))]
PromotionId = Annotated[str, Path(
    min_length=26,
    max_length=26,
    pattern="^[0-9A-HJKMNP-TV-Z]{26}$",
    description="Promotion ULID",
)]


@router.post("/promotions", response_model=PromotionResponse, status_code=status.HTTP_201_CREATED)
async def create_promotion(
    workspace_id: WorkspaceId,
    data: PromotionCreate,
    membership: PromotionsMember,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Recommend a member for promotion."""
    promotion = await PromotionStore(db).create(
        workspace_id=workspace_id,
        recommender_id=membership.user_id,
        target_user_id=data.target_user_id,
        current_role_id=data.current_role_id,
        recommended_role_id=data.recommended_role_id,
        reason=data.reason,
    )
    background_tasks.add_task(
        record_audit,
        workspace_id=workspace_id,
        actor_id=membership.user_id,
        action="promotions.create",
        subject="promotion",
        resource_id=promotion.id,
        diff={"before": None, "after": PromotionResponse.model_validate(promotion).model_dump(mode="json")},
        **audit_kwargs(request)
    )
    return promotion


@router.get("/promotions", response_model=List[PromotionSummary])
async def list_promotions(
    workspace_id: WorkspaceId,
    membership: PromotionsMember,
    db: Annotated[AsyncSession, Depends(get_db)],
    lookup: Annotated[IdentityLookup, Depends(get_identity_lookup)],
    sort: PromotionSort = PromotionSort.TRENDING,
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=100)] = 50
):
    """List the workspace's promotions."""
    return await PromotionStore(db).list_promotions(workspace_id, sort, lookup, skip=skip, limit=limit)


@router.get("/promotions/{promotion_id}", response_model=PromotionDetail)
async def get_promotion(
    workspace_id: WorkspaceId,
    promotion_id: PromotionId,
    membership: PromotionsMember,
    db: Annotated[AsyncSession, Depends(get_db)],
    lookup: Annotated[IdentityLookup, Depends(get_identity_lookup)]
):
    """Get a promotion with its voters and justifications."""
    return await PromotionStore(db).get_detail(workspace_id, promotion_id, lookup)


@router.delete("/promotions/{promotion_id}")
async def delete_promotion(
    workspace_id: WorkspaceId,
    promotion_id: PromotionId,
    membership: PromotionsManager,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Delete a promotion and all of its votes (manage_promotions, admin or owner)."""
    promotion = await PromotionStore(db).delete(workspace_id, promotion_id)
    background_tasks.add_task(
        record_audit,
        workspace_id=workspace_id,
        actor_id=membership.user_id,
        action="promotions.delete",
        subject="promotion",
        resource_id=promotion_id,
        diff={"before": {"target_user_id": promotion.target_user_id, "reason": promotion.reason}, "after": None},
        **audit_kwargs(request)
    )
    return {"success": True, "message": "Promotion deleted successfully"}


@router.post("/promotions/{promotion_id}/vote", response_model=VoteResult)
@limiter.limit(config.VOTE_RATE_LIMIT)
async def submit_vote(
    request: Request,
    workspace_id: WorkspaceId,
    promotion_id: PromotionId,
    vote: VoteCreate,
    membership: PromotionsMember,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Cast a vote, or replace the caller's earlier vote on this promotion."""
    tally = await VoteAggregator(db).submit_vote(
        workspace_id=workspace_id,
        promotion_id=promotion_id,
        voter_id=membership.user_id,
        is_upvote=vote.is_upvote,
        justification=vote.justification,
    )
    return VoteResult(upvotes=tally.upvotes, downvotes=tally.downvotes)
