"""
Workspace feature-toggle routes.

Reading a toggle is public; changing one requires the admin permission and is
audited with the before/after values.
"""
from typing import Annotated
from fastapi import APIRouter, BackgroundTasks, Depends, Path, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import ResourceNotFound
from app.features.permissions.dependencies import (
    WorkspaceId,
    audit_kwargs,
    get_config_store,
    record_audit,
    require_permission,
)
from app.features.permissions.evaluation import Membership
from app.features.permissions.vocabulary import ADMIN
from app.features.settings.schemas import FeatureToggleUpdate, SettingResponse
from app.features.settings.store import FEATURE_KEYS, ConfigStore, MalformedConfig, toggle_enabled
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()

FeatureKey = Annotated[str, Path(max_length=50, description="Feature toggle key")]


def _known_feature(feature_key: str) -> str:
    if feature_key not in FEATURE_KEYS:
        raise ResourceNotFound()
    return feature_key


@router.get("/settings/general/{feature_key}", response_model=SettingResponse)
async def get_feature_toggle(
    workspace_id: WorkspaceId,
    feature_key: FeatureKey,
    store: Annotated[ConfigStore, Depends(get_config_store)]
):
    """Read a feature toggle. 404 when it has never been set."""
    _known_feature(feature_key)
    try:
        value = await store.get(feature_key, workspace_id)
    except MalformedConfig:
        # Same reading the feature gate applies
        return SettingResponse(value={"enabled": False})
    if value is None:
        raise ResourceNotFound()
    return SettingResponse(value=value)


@router.patch("/settings/general/{feature_key}")
async def update_feature_toggle(
    workspace_id: WorkspaceId,
    feature_key: FeatureKey,
    update: FeatureToggleUpdate,
    membership: Annotated[Membership, Depends(require_permission(ADMIN))],
    background_tasks: BackgroundTasks,
    request: Request,
    store: Annotated[ConfigStore, Depends(get_config_store)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Switch a feature on or off (admin only)."""
    _known_feature(feature_key)
    try:
        before = await store.get(feature_key, workspace_id)
    except MalformedConfig:
        before = None
    after = {"enabled": update.enabled}
    await store.set(feature_key, after, workspace_id)
    await db.commit()

    log.info(
        "Workspace %s feature %s %s by %s",
        workspace_id, feature_key, "enabled" if toggle_enabled(after) else "disabled", membership.user_id
    )
    background_tasks.add_task(
        record_audit,
        workspace_id=workspace_id,
        actor_id=membership.user_id,
        action=f"settings.general.{feature_key}.update",
        subject=feature_key,
        diff={"before": before, "after": after},
        **audit_kwargs(request)
    )
    return {"success": True}
