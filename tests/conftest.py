"""Shared pytest fixtures for the permissions service."""

import os
import tempfile
from collections.abc import AsyncIterator
from pathlib import Path

# Configure the service before any app module reads its settings
_DB_DIR = Path(tempfile.mkdtemp(prefix="ccro-permissions-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR / 'test.sqlite'}"
os.environ["RATE_LIMIT_ENABLED"] = "0"

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from app.core import config  # noqa: E402
from app.core.database.base import Base  # noqa: E402
from app.core.database.engine import AsyncSessionLocal, engine, init_db  # noqa: E402
from app.features.permissions.defaults import Role  # noqa: E402
from app.features.users.models import User  # noqa: E402
from app.main import app as fastapi_app  # noqa: E402


SEED_USERS = {
    "admin": ("user-rob", "rob@updraft.com", "Rob", Role.CCRO_TEAM),
    "ceo": ("user-ceo", "aseem@updraft.com", "Aseem", Role.CEO),
    "owner": ("user-ash", "ash@updraft.com", "Ash", Role.OWNER),
    "viewer": ("user-viewer", "viewer@updraft.com", "Viewer", Role.VIEWER),
}


@pytest.fixture()
def app() -> FastAPI:
    return fastapi_app


@pytest_asyncio.fixture()
async def seed_identity() -> AsyncIterator[dict[str, str]]:
    """Recreate the schema and insert one user per role."""

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await init_db()

    async with AsyncSessionLocal() as session:
        for user_id, email, name, role in SEED_USERS.values():
            session.add(User(id=user_id, email=email, name=name, role=role))
        session.add(
            User(
                id="user-gone",
                email="gone@updraft.com",
                name="Gone",
                role=Role.CCRO_TEAM,
                is_active=False,
            )
        )
        await session.commit()

    yield {key: values[0] for key, values in SEED_USERS.items()}


@pytest_asyncio.fixture()
async def async_client(app: FastAPI, seed_identity: dict[str, str]) -> AsyncIterator[AsyncClient]:
    """Provide an HTTPX async client bound to the FastAPI app."""

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture()
def as_user():
    """Build the gateway header identifying a user."""

    def _headers(user_id: str) -> dict[str, str]:
        return {config.TRUSTED_USER_HEADER: user_id}

    return _headers
