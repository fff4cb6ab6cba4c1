"""
Shared slowapi limiter.

Keyed by the verified user id so that one account cannot flood the
override-writing endpoints.
"""
from slowapi import Limiter

from app.core import config
from app.features.users.dependencies import get_rate_limit_key


limiter = Limiter(key_func=get_rate_limit_key, enabled=config.RATE_LIMIT_ENABLED)
