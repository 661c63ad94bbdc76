"""
Workspace model.

A workspace is one managed group (the tenant boundary). It is keyed by the
group's numeric id rather than a generated identifier.
"""
from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database.base import Base, TimestampMixin


class Workspace(Base, TimestampMixin):
    __tablename__ = "workspaces"
    
    group_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    
    roles: Mapped[list["Role"]] = relationship(  # type: ignore
        "Role",
        back_populates="workspace",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )
    
    def __repr__(self) -> str:
        return f"<Workspace(group_id={self.group_id}, name={self.name!r})>"
