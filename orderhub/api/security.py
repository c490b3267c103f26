"""Request guards: Shiprocket IP allow-list and webhook rate limiting.

Security contract:
- The catalog feed is only served to Shiprocket's published egress IPs
  when SHIPROCKET_ALLOWED_IPS is set; an empty list allows everyone
- Client IP is the first X-Forwarded-For entry, else the peer address
- Rejections are 403 with no detail about the allow-list
"""

from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from orderhub.errors import ForbiddenError
from orderhub.services import get_services

logger = logging.getLogger(__name__)

WEBHOOK_RATE_LIMIT = "120/minute"


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


limiter = Limiter(key_func=client_ip)


def is_allowed_ip(ip: str, allowed: list[str]) -> bool:
    return not allowed or ip in allowed


def require_shiprocket_ip(request: Request) -> None:
    """FastAPI dependency rejecting callers outside the allow-list."""
    ip = client_ip(request)
    if not is_allowed_ip(ip, get_services().settings.allowed_ips):
        logger.warning("Blocked catalog request from %s to %s", ip, request.url.path)
        raise ForbiddenError("Forbidden")


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    retry_after = getattr(exc, "retry_after", 60)
    return JSONResponse(
        {"error": "Rate limit exceeded", "retry_after": retry_after},
        status_code=429,
        headers={"Retry-After": str(retry_after)},
    )
