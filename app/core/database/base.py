"""
SQLAlchemy declarative base and timestamp mixin.

Every model (users, role/user permission overrides, audit logs) inherits from Base.
"""
from datetime import datetime
from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.
    
    Usage:
        from app.core.database.base import Base
        
        class RolePermission(Base):
            __tablename__ = "role_permissions"
            
            id: Mapped[str] = mapped_column(String(26), primary_key=True)
            permission: Mapped[str] = mapped_column(String(100))
    """
    pass


class TimestampMixin:
    """Adds server-managed created_at/updated_at columns."""
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
