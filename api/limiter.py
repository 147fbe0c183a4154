"""
api/limiter.py -- Shared slowapi rate limiter for the TaskHub API.

api/main.py mounts it (SlowAPIMiddleware + app.state.limiter) and
api/routes/v1/auth.py applies login_rate_limit to POST /auth/login.

One instance per process: a second Limiter would keep its own counters and
the login limit would never trigger. Counters live in memory, so a
multi-worker deployment limits per worker.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")


def login_rate_limit() -> str:
    """Limit string for POST /auth/login, e.g. "10/minute" (LOGIN_RATE_LIMIT)."""
    return get_settings().login_rate_limit
