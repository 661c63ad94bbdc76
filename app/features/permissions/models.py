"""
Role, role-assignment, membership and audit models for workspace-scoped RBAC.

This module implements:
- Workspace-scoped roles carrying a list of permission tokens
- An owner flag on roles (bypasses explicit permission sets)
- User role assignments within a workspace
- A per-workspace membership row carrying the admin override
- An audit log of permission-relevant changes
"""
from datetime import datetime
from typing import Any, Dict
from sqlalchemy import (
    BigInteger, Boolean, Column, DateTime, ForeignKey, JSON, String, Table, Text, UniqueConstraint, func
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, TimestampMixin, generate_ulid


# ============================================================================
# Association Tables
# ============================================================================

# Workspace-User-Role relationship (users hold roles within specific workspaces)
workspace_user_roles = Table(
    "workspace_user_roles",
    Base.metadata,
    Column("workspace_id", BigInteger, ForeignKey("workspaces.group_id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", BigInteger, primary_key=True),
    Column("role_id", String(26), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("assigned_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("assigned_by_id", BigInteger, nullable=True),
)


# ============================================================================
# Core Models
# ============================================================================

class Role(Base, TimestampMixin):
    """
    Named bundle of permission tokens scoped to one workspace.
    
    Tokens come from the fixed vocabulary in app.features.permissions.vocabulary.
    A role flagged is_owner_role grants everything regardless of its tokens.
    """
    __tablename__ = "roles"
    __table_args__ = (
        UniqueConstraint("workspace_id", "name"),
    )
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    
    workspace_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("workspaces.group_id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    permissions: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    is_owner_role: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    
    workspace: Mapped["Workspace"] = relationship("Workspace", back_populates="roles")  # type: ignore
    
    def __repr__(self) -> str:
        return f"<Role(id={self.id}, name={self.name!r}, workspace_id={self.workspace_id}, owner={self.is_owner_role})>"


class WorkspaceMembership(Base):
    """
    Per-workspace membership flags for a user.
    
    is_admin is an override: it grants the full permission vocabulary
    whatever role the user resolves to. A missing row means is_admin=False.
    """
    __tablename__ = "workspace_memberships"
    
    workspace_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("workspaces.group_id", ondelete="CASCADE"),
        primary_key=True
    )
    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    def __repr__(self) -> str:
        return f"<WorkspaceMembership(workspace_id={self.workspace_id}, user_id={self.user_id}, admin={self.is_admin})>"


class AuditLog(Base, TimestampMixin):
    """
    Audit log for tracking permission and settings changes.
    
    Tracks who did what to which subject, with a before/after diff in details.
    """
    __tablename__ = "audit_logs"
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    
    # Actor (None for system actions)
    user_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)
    
    # Action details
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    
    # Context; no FK so records outlive the workspace
    workspace_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)
    details: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    
    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, user_id={self.user_id}, action={self.action}, resource={self.resource_type})>"
