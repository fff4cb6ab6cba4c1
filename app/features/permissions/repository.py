"""
Override stores.

The resolver never touches the database. Request handlers obtain an
``OverrideRepository`` through dependency injection, load one snapshot of
the role and user overrides, and hand it to the resolver.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.permissions.defaults import Role
from app.features.permissions.models import RolePermission, UserPermission, generate_ulid
from app.utils import get_logger


log = get_logger(__name__)

# Dialects with INSERT ... ON CONFLICT DO UPDATE
_UPSERT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


@dataclass(frozen=True)
class OverrideRecord:
    """An explicit grant or denial for one permission."""

    permission: str
    granted: bool


@dataclass(frozen=True)
class OverrideSnapshot:
    """Role and user overrides read together for a single resolution."""

    role: Role
    role_overrides: Tuple[OverrideRecord, ...] = ()
    user_overrides: Tuple[OverrideRecord, ...] = ()


class OverrideRepository(Protocol):
    """Read and write access to role-level and user-level overrides."""

    async def get_role_overrides(self, role: Role) -> List[OverrideRecord]: ...

    async def get_user_overrides(self, user_id: str) -> List[OverrideRecord]: ...

    async def load_snapshot(self, role: Role, user_id: Optional[str]) -> OverrideSnapshot: ...

    async def list_role_overrides(self) -> Sequence[RolePermission]: ...

    async def list_user_overrides(self, user_id: Optional[str] = None) -> Sequence[UserPermission]: ...

    async def set_role_overrides(self, role: Role, changes: Mapping[str, Optional[bool]]) -> None: ...

    async def set_user_overrides(self, user_id: str, changes: Mapping[str, Optional[bool]]) -> None: ...


class SqlAlchemyOverrideRepository:
    """
    Override store backed by the ``role_permissions`` and ``user_permissions`` tables.

    Writes are atomic upserts keyed on (subject, permission), so concurrent
    writers of the same key never collide. ``None`` deletes the
    row so the pair falls back to Inherit. The caller owns the transaction.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_role_overrides(self, role: Role) -> List[OverrideRecord]:
        result = await self.db.execute(
            select(RolePermission.permission, RolePermission.granted)
            .where(RolePermission.role == role)
        )
        return [OverrideRecord(permission, granted) for permission, granted in result.all()]

    async def get_user_overrides(self, user_id: str) -> List[OverrideRecord]:
        result = await self.db.execute(
            select(UserPermission.permission, UserPermission.granted)
            .where(UserPermission.user_id == user_id)
        )
        return [OverrideRecord(permission, granted) for permission, granted in result.all()]

    async def load_snapshot(self, role: Role, user_id: Optional[str]) -> OverrideSnapshot:
        role_overrides = await self.get_role_overrides(role)
        user_overrides = await self.get_user_overrides(user_id) if user_id else []
        return OverrideSnapshot(
            role=role,
            role_overrides=tuple(role_overrides),
            user_overrides=tuple(user_overrides),
        )

    async def list_role_overrides(self) -> Sequence[RolePermission]:
        result = await self.db.execute(
            select(RolePermission).order_by(RolePermission.role, RolePermission.permission)
        )
        return result.scalars().all()

    async def list_user_overrides(self, user_id: Optional[str] = None) -> Sequence[UserPermission]:
        stmt = select(UserPermission)
        if user_id:
            stmt = stmt.where(UserPermission.user_id == user_id)
        result = await self.db.execute(stmt.order_by(UserPermission.user_id, UserPermission.permission))
        return result.scalars().all()

    async def _upsert(self, model, key: Dict[str, Any], granted: bool) -> None:
        """Insert an override or update ``granted`` on the (subject, permission) key in one statement."""
        dialect = self.db.get_bind().dialect.name
        insert = _UPSERT_INSERTS.get(dialect)
        if insert is None:
            raise NotImplementedError(f"Override upsert is not supported on {dialect}")

        stmt = insert(model).values(id=generate_ulid(), granted=granted, **key)
        stmt = stmt.on_conflict_do_update(
            index_elements=list(key),
            set_={"granted": stmt.excluded.granted, "updated_at": func.now()},
        )
        await self.db.execute(stmt)

    async def set_role_overrides(self, role: Role, changes: Mapping[str, Optional[bool]]) -> None:
        for permission, granted in changes.items():
            if granted is None:
                await self.db.execute(
                    delete(RolePermission).where(
                        RolePermission.role == role,
                        RolePermission.permission == permission,
                    )
                )
            else:
                await self._upsert(RolePermission, {"role": role, "permission": permission}, granted)

        await self.db.flush()
        log.debug("Applied %d role override change(s) for %s", len(changes), role)

    async def set_user_overrides(self, user_id: str, changes: Mapping[str, Optional[bool]]) -> None:
        for permission, granted in changes.items():
            if granted is None:
                await self.db.execute(
                    delete(UserPermission).where(
                        UserPermission.user_id == user_id,
                        UserPermission.permission == permission,
                    )
                )
            else:
                await self._upsert(UserPermission, {"user_id": user_id, "permission": permission}, granted)

        await self.db.flush()
        log.debug("Applied %d user override change(s) for %s", len(changes), user_id)
