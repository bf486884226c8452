"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and in route modules
(to apply per-route limits with @limiter.limit()).

A single shared instance keeps one in-memory counter store for all routes.
RATE_LIMIT_ENABLED=false turns limiting off (the test suite does this).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=get_settings().rate_limit_enabled,
)
