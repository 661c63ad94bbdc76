"""
Promotion recommendation and vote models.

A promotion is one member's recommendation that another member move from one
role to another. Other members vote on it, once each. The upvotes/downvotes
columns are a read model recomputed from promotion_votes after every vote
write and are never incremented in place.
"""
import enum
from sqlalchemy import BigInteger, Boolean, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, TimestampMixin, generate_ulid


class PromotionStatus(str, enum.Enum):
    """Status vocabulary. Only PENDING is ever written; no transition logic exists."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Promotion(Base, TimestampMixin):
    __tablename__ = "promotions"
    
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    
    workspace_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("workspaces.group_id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    recommender_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    target_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    
    # Plain references: a recommendation does not require the roles to still exist
    current_role_id: Mapped[str] = mapped_column(String(26), nullable=False)
    recommended_role_id: Mapped[str] = mapped_column(String(26), nullable=False)
    
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    
    # Derived from promotion_votes
    upvotes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    downvotes: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=PromotionStatus.PENDING.value)
    
    votes: Mapped[list["PromotionVote"]] = relationship(
        "PromotionVote",
        back_populates="promotion",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="noload",
    )
    
    def __repr__(self) -> str:
        return f"<Promotion(id={self.id}, workspace_id={self.workspace_id}, target={self.target_user_id}, +{self.upvotes}/-{self.downvotes})>"


class PromotionVote(Base, TimestampMixin):
    """One voter's vote on one promotion. (promotion_id, voter_id) is unique."""
    __tablename__ = "promotion_votes"
    __table_args__ = (
        UniqueConstraint("promotion_id", "voter_id"),
    )
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    promotion_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("promotions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    voter_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    is_upvote: Mapped[bool] = mapped_column(Boolean, nullable=False)
    justification: Mapped[str] = mapped_column(Text, nullable=False)
    
    promotion: Mapped["Promotion"] = relationship("Promotion", back_populates="votes")
    
    def __repr__(self) -> str:
        return f"<PromotionVote(promotion_id={self.promotion_id}, voter_id={self.voter_id}, up={self.is_upvote})>"
