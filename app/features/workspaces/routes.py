"""
Workspace summary route.
"""
from typing import Annotated
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import ResourceNotFound
from app.features.permissions.dependencies import WorkspaceId, get_feature_gate, require_membership
from app.features.permissions.evaluation import Membership, effective_permissions, order_roles
from app.features.settings.store import FEATURE_KEYS, FeatureGate
from app.features.permissions.schemas import RoleResponse
from app.features.workspaces.models import Workspace
from app.features.workspaces.schemas import WorkspaceSummary


router = APIRouter()


@router.get("/{workspace_id}", response_model=WorkspaceSummary)
async def get_workspace(
    workspace_id: WorkspaceId,
    membership: Annotated[Membership, Depends(require_membership)],
    gate: Annotated[FeatureGate, Depends(get_feature_gate)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """
    Summarize a workspace for one of its members.

    Includes the roles (owner roles first), the caller's authoritative role
    and effective permissions, and the enabled flag of every feature toggle.
    """
    workspace = await db.get(Workspace, workspace_id)
    if workspace is None:
        raise ResourceNotFound()

    settings = {}
    for key in FEATURE_KEYS:
        settings[f"{key}_enabled"] = await gate.is_enabled(workspace_id, key)

    return WorkspaceSummary(
        group_id=workspace.group_id,
        name=workspace.name,
        roles=[RoleResponse.model_validate(role) for role in order_roles(workspace.roles)],
        your_role=RoleResponse.model_validate(membership.role),
        is_admin=membership.is_admin,
        your_permissions=effective_permissions(membership),
        settings=settings,
    )
