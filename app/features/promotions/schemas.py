"""
Pydantic schemas for promotion recommendations and votes.
"""
import enum
from datetime import datetime
from typing import List
from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator


class PromotionSort(str, enum.Enum):
    TRENDING = "trending"
    TOP = "top"
    NEW = "new"


# ============================================================================
# Requests
# ============================================================================

class PromotionCreate(BaseModel):
    """Schema for recommending a promotion."""
    target_user_id: int = Field(..., ge=1, alias="targetUserId", description="User being recommended")
    current_role_id: str = Field(..., min_length=1, max_length=26, alias="currentRoleId")
    recommended_role_id: str = Field(..., min_length=1, max_length=26, alias="recommendedRoleId")
    reason: str = Field(..., max_length=5000)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Reason is required")
        return v.strip()


class VoteCreate(BaseModel):
    """Schema for casting or changing a vote."""
    is_upvote: StrictBool = Field(..., alias="isUpvote")
    justification: str = Field(..., max_length=5000)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("justification")
    @classmethod
    def justification_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Justification is required")
        return v


# ============================================================================
# Responses
# ============================================================================

class VoterIdentity(BaseModel):
    user_id: int
    username: str
    avatar: str


class PromotionComment(BaseModel):
    """A vote's justification, shown as a comment."""
    id: int
    user_id: int
    username: str
    avatar: str
    content: str
    is_upvote: bool
    created_at: datetime


class PromotionBase(BaseModel):
    id: str
    recommender_id: int
    recommender_name: str
    recommender_avatar: str
    target_user_id: int
    target_username: str
    target_avatar: str
    current_role: str
    recommended_role: str
    reason: str
    upvotes: int
    downvotes: int
    status: str
    created_at: datetime


class PromotionSummary(PromotionBase):
    comments: int = Field(0, description="Number of votes cast")


class PromotionDetail(PromotionBase):
    current_role_id: str
    recommended_role_id: str
    voters: List[VoterIdentity] = []
    comments: List[PromotionComment] = []


class PromotionResponse(BaseModel):
    """Raw promotion row, returned on creation."""
    id: str
    workspace_id: int
    recommender_id: int
    target_user_id: int
    current_role_id: str
    recommended_role_id: str
    reason: str
    upvotes: int
    downvotes: int
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class VoteResult(BaseModel):
    success: bool = True
    message: str = "Vote submitted successfully"
    upvotes: int
    downvotes: int
