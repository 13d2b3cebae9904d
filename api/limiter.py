"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in both api/main.py (to mount as middleware) and the v1 route
modules (to apply per-route limits with @limiter.limit()).

Using a single shared instance ensures all routes share the same in-memory
counter store. If this were instantiated in each module separately, each
module would get its own isolated counter and rate limits would never trigger.

Callers are keyed by their session cookie when they have one, so several
users behind one NAT do not share a bucket. Anonymous callers fall back to
the remote address.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from core.config import get_settings


def session_or_remote_address(request: Request) -> str:
    session_id = request.cookies.get(get_settings().session_cookie_name)
    if session_id:
        return f"session:{session_id}"
    return get_remote_address(request)


limiter = Limiter(key_func=session_or_remote_address, storage_uri="memory://")
