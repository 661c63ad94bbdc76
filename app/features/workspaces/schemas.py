"""
Pydantic schemas for the workspace summary.
"""
from typing import Dict, List, Optional
from pydantic import BaseModel

from app.features.permissions.schemas import RoleResponse


class WorkspaceSummary(BaseModel):
    """What the caller sees when opening a workspace."""
    group_id: int
    name: str
    roles: List[RoleResponse]
    your_role: Optional[RoleResponse]
    is_admin: bool
    your_permissions: List[str]
    settings: Dict[str, bool]
