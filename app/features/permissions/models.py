"""
Override and audit models for the layered permission system.

Role and user overrides only store explicit grants and denials. A missing
row means the pair inherits from the next layer, so reverting an override
deletes its row.
"""
from typing import Any, Dict
from sqlalchemy import Boolean, Enum as SAEnum, ForeignKey, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from ulid import ULID

from app.core.database.base import Base, TimestampMixin
from app.features.permissions.defaults import Role


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return str(ULID())


class RolePermission(Base, TimestampMixin):
    """
    Administrator-configured override of a role default.

    One row per (role, permission); writes upsert on that key.
    """
    __tablename__ = "role_permissions"
    __table_args__ = (
        UniqueConstraint("role", "permission", name="uq_role_permissions_role_permission"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    role: Mapped[Role] = mapped_column(SAEnum(Role, name="user_role"), nullable=False, index=True)
    permission: Mapped[str] = mapped_column(String(100), nullable=False)
    granted: Mapped[bool] = mapped_column(Boolean, nullable=False)

    def __repr__(self) -> str:
        return f"<RolePermission(role={self.role}, permission={self.permission!r}, granted={self.granted})>"


class UserPermission(Base, TimestampMixin):
    """
    Per-user override, taking precedence over role settings and defaults.

    One row per (user_id, permission); writes upsert on that key.
    """
    __tablename__ = "user_permissions"
    __table_args__ = (
        UniqueConstraint("user_id", "permission", name="uq_user_permissions_user_permission"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    user_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    permission: Mapped[str] = mapped_column(String(100), nullable=False)
    granted: Mapped[bool] = mapped_column(Boolean, nullable=False)

    def __repr__(self) -> str:
        return f"<UserPermission(user_id={self.user_id}, permission={self.permission!r}, granted={self.granted})>"


class AuditLog(Base, TimestampMixin):
    """
    Audit log for permission changes.

    Tracks who changed what, when, and from where.
    """
    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # Actor
    user_id: Mapped[str | None] = mapped_column(
        String(64),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Action details
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    changes: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    # Context
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, user_id={self.user_id}, action={self.action}, entity={self.entity_type})>"
