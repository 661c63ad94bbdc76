"""
SQLAlchemy declarative base and shared column helpers.

Every model in app/features/*/models.py inherits from Base.
"""
from datetime import datetime
from sqlalchemy import DateTime, MetaData, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from ulid import ULID


# Stable constraint names so unique/foreign keys are addressable across backends
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


def generate_ulid() -> str:
    """Generate a new 26-character ULID string."""
    return str(ULID())


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.
    
    Usage:
        from app.core.database.base import Base
        
        class Workspace(Base):
            __tablename__ = "workspaces"
            
            group_id: Mapped[int] = mapped_column(primary_key=True)
    """
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class TimestampMixin:
    """
    Adds server-managed created_at and updated_at columns.
    
    updated_at is refreshed by the ORM on flush; bulk UPDATE statements must
    set it explicitly.
    """
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
