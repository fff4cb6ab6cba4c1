"""
FastAPI dependencies for authentication.

Sessions are verified by the auth gateway in front of this service, which
forwards the verified user id in a trusted header (``config.TRUSTED_USER_HEADER``).
"""
from typing import Annotated
from datetime import datetime, timezone
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)


def get_verified_user_id(request: Request) -> str | None:
    """Return the gateway-verified user id, or None if the header is absent."""
    user_id = request.headers.get(config.TRUSTED_USER_HEADER, "").strip()
    return user_id or None


async def get_current_user(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)]
) -> User:
    """
    Get the current authenticated user from the verified user header.

    This dependency:
    1. Reads the user id forwarded by the auth gateway
    2. Looks up the user in the local database
    3. Rejects deactivated accounts
    4. Updates last_login_at timestamp

    Usage:
        @router.get("/me")
        async def get_me(user: User = Depends(get_current_user)):
            return user
    """
    user_id = get_verified_user_id(request)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorised",
        )

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        log.info("Verified user %s has no local account", user_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorised",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    user.last_login_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(user)

    return user


def get_rate_limit_key(request: Request) -> str:
    """
    Extract the verified user id for rate limiting.
    Used with slowapi Limiter.
    """
    return get_verified_user_id(request) or "anonymous"
