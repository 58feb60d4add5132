"""Rate limiter configuration shared across all routers."""

from typing import Optional

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address


def get_client_ip(request: Request) -> Optional[str]:
    """Extract real client IP, respecting X-Forwarded-For from trusted proxies."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def get_rate_limit_key(request: Request) -> str:
    """
    Get rate limit key from request.

    Credential endpoints are anonymous, so the client address is the key.
    """
    return get_client_ip(request) or get_remote_address(request)


limiter = Limiter(key_func=get_rate_limit_key)
