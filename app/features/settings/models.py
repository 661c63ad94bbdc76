"""
Per-workspace configuration entries.

Values are stored as serialized JSON text. Feature toggles use the shape
``{"enabled": bool}``; other keys may carry any JSON document.
"""
from sqlalchemy import BigInteger, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database.base import Base, TimestampMixin


class Config(Base, TimestampMixin):
    __tablename__ = "configs"
    __table_args__ = (
        UniqueConstraint("workspace_id", "key"),
    )
    
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    workspace_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("workspaces.group_id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    key: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    
    def __repr__(self) -> str:
        return f"<Config(workspace_id={self.workspace_id}, key={self.key!r})>"
