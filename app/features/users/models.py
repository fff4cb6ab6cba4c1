"""
User model.

The role column selects the default permission set and the role-level
overrides that apply to the user.
"""
from datetime import datetime
from sqlalchemy import String, Boolean, DateTime, Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column
from ulid import ULID

from app.core.database.base import Base, TimestampMixin
from app.features.permissions.defaults import Role


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return str(ULID())


class User(Base, TimestampMixin):
    """
    User model representing authenticated users.

    IDs are ULIDs by default. Seeded users keep their readable slugs
    (e.g. "user-rob") so the gateway can map sessions onto them.
    """
    __tablename__ = "users"
    
    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=generate_ulid)
    
    # User information
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[Role] = mapped_column(
        SAEnum(Role, name="user_role"),
        nullable=False,
        default=Role.VIEWER,
        index=True
    )
    
    # Status flags
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    
    # Track last login
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    
    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r}, role={self.role})>"
