"""
Membership resolution, route guards and audit logging for workspace RBAC.

Implements:
- MembershipResolver: loads a user's authoritative role in a workspace
- FastAPI dependencies that gate routes on feature toggles and permissions
- Best-effort audit logging
"""
from typing import Annotated, Any, Dict, Optional
from fastapi import Depends, Path
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import AsyncSessionLocal, get_db
from app.core.errors import FeatureDisabled, PermissionDenied
from app.features.permissions.evaluation import Membership, authorize_any, pick_authoritative_role
from app.features.permissions.models import AuditLog, Role, WorkspaceMembership, workspace_user_roles
from app.features.settings.store import ConfigStore, FeatureGate
from app.features.users.dependencies import get_current_user_id
from app.utils import get_logger


log = get_logger(__name__)


WorkspaceId = Annotated[int, Path(ge=1, description="Numeric group id of the workspace")]


# ============================================================================
# Membership Resolution
# ============================================================================

async def get_user_roles_in_workspace(
    db: AsyncSession,
    user_id: int,
    workspace_id: int
) -> list[Role]:
    """Every role assigned to the user within the workspace, unordered."""
    stmt = (
        select(Role)
        .join(workspace_user_roles, workspace_user_roles.c.role_id == Role.id)
        .where(
            workspace_user_roles.c.user_id == user_id,
            workspace_user_roles.c.workspace_id == workspace_id,
            Role.workspace_id == workspace_id,
        )
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def resolve_membership(
    db: AsyncSession,
    user_id: int,
    workspace_id: int
) -> Optional[Membership]:
    """
    Resolve a user's membership in a workspace.

    Returns None when the user holds no role there; callers treat that as
    "not a member", not as an error. With several assignments the role chosen
    by pick_authoritative_role wins (owner roles first, then oldest).
    """
    roles = await get_user_roles_in_workspace(db, user_id, workspace_id)
    role = pick_authoritative_role(roles)
    if role is None:
        return None

    is_admin = await db.scalar(
        select(WorkspaceMembership.is_admin).where(
            WorkspaceMembership.workspace_id == workspace_id,
            WorkspaceMembership.user_id == user_id,
        )
    )
    return Membership(
        user_id=user_id,
        workspace_id=workspace_id,
        role=role,
        is_admin=bool(is_admin),
    )


# ============================================================================
# FastAPI Dependencies
# ============================================================================

def get_config_store(db: Annotated[AsyncSession, Depends(get_db)]) -> ConfigStore:
    return ConfigStore(db)


def get_feature_gate(store: Annotated[ConfigStore, Depends(get_config_store)]) -> FeatureGate:
    return FeatureGate(store)


async def require_membership(
    workspace_id: WorkspaceId,
    user_id: Annotated[int, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Membership:
    """
    Require the caller to be a member of the workspace in the path.

    Raises:
        Unauthenticated: 401 without a valid session
        PermissionDenied: 403 for non-members
    """
    membership = await resolve_membership(db, user_id, workspace_id)
    if membership is None:
        log.debug("User %s is not a member of workspace %s", user_id, workspace_id)
        raise PermissionDenied()
    return membership


def require_permission(*permissions: str):
    """
    FastAPI dependency requiring ANY of the given permission tokens.

    Usage:
        @router.patch("/settings")
        async def update_settings(
            membership: Membership = Depends(require_permission("admin"))
        ):
            ...
    """
    if not permissions:
        raise ValueError("require_permission needs at least one token")

    async def permission_dependency(
        membership: Annotated[Membership, Depends(require_membership)]
    ) -> Membership:
        if not authorize_any(membership, permissions):
            raise PermissionDenied("Insufficient permissions")
        return membership

    return permission_dependency


def require_feature_member(feature_key: str):
    """
    FastAPI dependency for routes under a feature toggle.

    Order: session (401), toggle (404, indistinguishable from a missing
    resource), membership (403).
    """
    async def feature_dependency(
        workspace_id: WorkspaceId,
        user_id: Annotated[int, Depends(get_current_user_id)],
        gate: Annotated[FeatureGate, Depends(get_feature_gate)],
        db: Annotated[AsyncSession, Depends(get_db)]
    ) -> Membership:
        if not await gate.is_enabled(workspace_id, feature_key):
            raise FeatureDisabled(feature_key)
        membership = await resolve_membership(db, user_id, workspace_id)
        if membership is None:
            raise PermissionDenied()
        return membership

    return feature_dependency


def require_feature_permission(feature_key: str, *permissions: str):
    """
    Like require_feature_member, then requires ANY of the given tokens (403).

    Runs as a dependency so the check happens before path and body validation.
    """
    if not permissions:
        raise ValueError("require_feature_permission needs at least one token")

    async def feature_permission_dependency(
        membership: Annotated[Membership, Depends(require_feature_member(feature_key))]
    ) -> Membership:
        if not authorize_any(membership, permissions):
            raise PermissionDenied("Insufficient permissions")
        return membership

    return feature_permission_dependency


# ============================================================================
# Audit Logging
# ============================================================================

async def record_audit(
    workspace_id: Optional[int],
    actor_id: Optional[int],
    action: str,
    subject: str,
    diff: Optional[Dict[str, Any]] = None,
    resource_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None
) -> Optional[AuditLog]:
    """
    Write an audit entry in its own session.

    Best effort: any failure is logged and swallowed, and None is returned.

    Args:
        workspace_id: Workspace context
        actor_id: User performing the action (None for system actions)
        action: Dotted action name (e.g. "promotions.delete")
        subject: Resource type (e.g. "promotion", "role")
        diff: {"before": ..., "after": ...}
        resource_id: Identifier of the affected resource
    """
    try:
        async with AsyncSessionLocal() as session:
            audit_log = AuditLog(
                user_id=actor_id,
                action=action,
                resource_type=subject,
                resource_id=resource_id,
                workspace_id=workspace_id,
                details=diff,
                ip_address=ip_address,
                user_agent=user_agent
            )
            session.add(audit_log)
            await session.commit()
    except Exception as e:
        log.warning("Audit write failed for %s on %s:%s: %s", action, subject, resource_id, e)
        return None

    log.info(
        "Audit: user=%s action=%s resource=%s:%s workspace=%s",
        actor_id, action, subject, resource_id, workspace_id
    )
    return audit_log


def audit_kwargs(request) -> Dict[str, Optional[str]]:
    """Client details attached to every audit entry."""
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }
