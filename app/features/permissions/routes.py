"""
Workspace role and membership management routes.

Provides endpoints for listing and creating roles, assigning them to users,
setting the admin override, and reading the audit log.
"""
from typing import Annotated, List
from fastapi import APIRouter, BackgroundTasks, Depends, Path, Query, Request, status
from sqlalchemy import and_, delete, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import Conflict, ResourceNotFound
from app.features.permissions.dependencies import (
    WorkspaceId,
    audit_kwargs,
    record_audit,
    require_membership,
    require_permission,
)
from app.features.permissions.evaluation import Membership, order_roles
from app.features.permissions.models import AuditLog, Role, WorkspaceMembership, workspace_user_roles
from app.features.permissions.schemas import (
    AssignRoleToMember,
    AuditLogResponse,
    MembershipResponse,
    RoleCreate,
    RoleResponse,
    SetMemberAdmin,
)
from app.features.permissions.vocabulary import ADMIN
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()

MemberId = Annotated[int, Path(ge=1, description="Numeric user id")]
WorkspaceAdmin = Annotated[Membership, Depends(require_permission(ADMIN))]


async def _get_workspace_role(db: AsyncSession, workspace_id: int, role_id: str) -> Role:
    result = await db.execute(
        select(Role).where(Role.id == role_id, Role.workspace_id == workspace_id)
    )
    role = result.scalars().first()
    if not role:
        raise ResourceNotFound()
    return role


# ============================================================================
# Role Routes
# ============================================================================

@router.get("/roles", response_model=List[RoleResponse])
async def list_roles(
    workspace_id: WorkspaceId,
    membership: Annotated[Membership, Depends(require_membership)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """List the workspace's roles, owner roles first."""
    result = await db.execute(select(Role).where(Role.workspace_id == workspace_id))
    return order_roles(result.scalars().all())


@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    workspace_id: WorkspaceId,
    role: RoleCreate,
    admin: WorkspaceAdmin,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create a role (admin only)."""
    try:
        db_role = Role(workspace_id=workspace_id, **role.model_dump())
        db.add(db_role)
        await db.commit()
        await db.refresh(db_role)
    except IntegrityError:
        await db.rollback()
        raise Conflict("Role with this name already exists")

    log.info("Role %r created in workspace %s by %s", db_role.name, workspace_id, admin.user_id)

    background_tasks.add_task(
        record_audit,
        workspace_id=workspace_id,
        actor_id=admin.user_id,
        action="roles.create",
        subject="role",
        resource_id=db_role.id,
        diff={"before": None, "after": role.model_dump()},
        **audit_kwargs(request)
    )
    return db_role


# ============================================================================
# Member Routes
# ============================================================================

@router.post("/members/{member_id}/roles", status_code=status.HTTP_200_OK)
async def assign_role_to_member(
    workspace_id: WorkspaceId,
    member_id: MemberId,
    assignment: AssignRoleToMember,
    admin: WorkspaceAdmin,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Assign a workspace role to a user (admin only). Re-assigning is a no-op."""
    role = await _get_workspace_role(db, workspace_id, assignment.role_id)

    check_stmt = select(workspace_user_roles).where(
        and_(
            workspace_user_roles.c.workspace_id == workspace_id,
            workspace_user_roles.c.user_id == member_id,
            workspace_user_roles.c.role_id == role.id
        )
    )
    if (await db.execute(check_stmt)).first():
        return {"message": f"Role '{role.name}' already assigned"}

    await db.execute(
        insert(workspace_user_roles).values(
            workspace_id=workspace_id,
            user_id=member_id,
            role_id=role.id,
            assigned_by_id=admin.user_id
        )
    )
    await db.commit()

    background_tasks.add_task(
        record_audit,
        workspace_id=workspace_id,
        actor_id=admin.user_id,
        action="roles.assign",
        subject="member",
        resource_id=str(member_id),
        diff={"before": None, "after": {"role_id": role.id, "role_name": role.name}},
        **audit_kwargs(request)
    )
    return {"message": f"Role '{role.name}' assigned"}


@router.delete("/members/{member_id}/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_role_from_member(
    workspace_id: WorkspaceId,
    member_id: MemberId,
    role_id: str,
    admin: WorkspaceAdmin,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Remove a role assignment (admin only)."""
    match = and_(
        workspace_user_roles.c.workspace_id == workspace_id,
        workspace_user_roles.c.user_id == member_id,
        workspace_user_roles.c.role_id == role_id
    )
    if not (await db.execute(select(workspace_user_roles).where(match))).first():
        raise ResourceNotFound()

    await db.execute(delete(workspace_user_roles).where(match))
    await db.commit()

    background_tasks.add_task(
        record_audit,
        workspace_id=workspace_id,
        actor_id=admin.user_id,
        action="roles.remove",
        subject="member",
        resource_id=str(member_id),
        diff={"before": {"role_id": role_id}, "after": None},
        **audit_kwargs(request)
    )
    return None


@router.put("/members/{member_id}/admin", response_model=MembershipResponse)
async def set_member_admin(
    workspace_id: WorkspaceId,
    member_id: MemberId,
    update: SetMemberAdmin,
    admin: WorkspaceAdmin,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Set or clear the admin override for a user (admin only)."""
    membership_row = await db.get(WorkspaceMembership, (workspace_id, member_id))
    before = membership_row.is_admin if membership_row else False
    if membership_row is None:
        membership_row = WorkspaceMembership(workspace_id=workspace_id, user_id=member_id, is_admin=update.is_admin)
        db.add(membership_row)
    else:
        membership_row.is_admin = update.is_admin
    await db.commit()

    background_tasks.add_task(
        record_audit,
        workspace_id=workspace_id,
        actor_id=admin.user_id,
        action="members.admin.update",
        subject="member",
        resource_id=str(member_id),
        diff={"before": {"is_admin": before}, "after": {"is_admin": update.is_admin}},
        **audit_kwargs(request)
    )
    return MembershipResponse(workspace_id=workspace_id, user_id=member_id, is_admin=update.is_admin)


# ============================================================================
# Audit Log Routes
# ============================================================================

@router.get("/audit-logs", response_model=List[AuditLogResponse])
async def list_audit_logs(
    workspace_id: WorkspaceId,
    admin: WorkspaceAdmin,
    db: Annotated[AsyncSession, Depends(get_db)],
    skip: Annotated[int, Query(ge=0)] = 0,
    limit: Annotated[int, Query(ge=1, le=200)] = 50
):
    """Most recent audit entries for the workspace (admin only)."""
    stmt = (
        select(AuditLog)
        .where(AuditLog.workspace_id == workspace_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset(skip)
        .limit(limit)
    )
    result = await db.execute(stmt)
    return result.scalars().all()
