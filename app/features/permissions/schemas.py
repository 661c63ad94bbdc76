"""
Pydantic schemas for workspace roles and membership management.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator

from app.features.permissions.vocabulary import unknown_tokens


# ============================================================================
# Role Schemas
# ============================================================================

class RoleBase(BaseModel):
    """Base role schema."""
    name: str = Field(..., min_length=1, max_length=100, description="Role name, unique within the workspace")
    permissions: List[str] = Field(default_factory=list, description="Permission tokens granted by the role")
    is_owner_role: bool = Field(False, description="Owner roles bypass permission checks")


class RoleCreate(RoleBase):
    """Schema for creating a new role."""

    @field_validator('name')
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('Role name is required')
        return v.strip()

    @field_validator('permissions')
    @classmethod
    def permissions_in_vocabulary(cls, v: List[str]) -> List[str]:
        """Reject tokens outside the fixed vocabulary."""
        unknown = unknown_tokens(v)
        if unknown:
            raise ValueError(f'Unknown permission: {unknown[0]}')
        # Deduplicate, keep order
        return list(dict.fromkeys(v))


class RoleResponse(RoleBase):
    """Schema for role response."""
    id: str
    workspace_id: int
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Assignment Schemas
# ============================================================================

class AssignRoleToMember(BaseModel):
    """Schema for assigning a workspace role to a user."""
    role_id: str = Field(..., min_length=1, max_length=26, description="Role ID")


class SetMemberAdmin(BaseModel):
    """Schema for setting the admin override on a membership."""
    is_admin: StrictBool


class MembershipResponse(BaseModel):
    user_id: int
    workspace_id: int
    is_admin: bool

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Audit Log Schemas
# ============================================================================

class AuditLogResponse(BaseModel):
    """Schema for audit log response."""
    id: str
    user_id: Optional[int]
    action: str
    resource_type: str
    resource_id: Optional[str]
    workspace_id: Optional[int]
    details: Optional[dict]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
