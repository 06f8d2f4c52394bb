"""
Request rate limiting.

Limits are keyed on the asserted caller (``X-User-ID``) so students sharing a
campus NAT do not exhaust each other's budget; anonymous requests fall back to
the client address.
"""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from unitrack.logging_config import get_logger, log_with_context

logger = get_logger("http")


def caller_key(request: Request) -> str:
    user_id = request.headers.get("x-user-id")
    if user_id:
        return "user:{}".format(user_id)
    return "ip:{}".format(get_remote_address(request))


limiter = Limiter(key_func=caller_key)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    log_with_context(logger, "WARNING",
        f"{request.method} {request.url.path} rate limited",
        extra_data={"key": caller_key(request), "limit": str(exc.detail)})
    return JSONResponse(
        status_code=429,
        content={
            "detail": "Too many requests. Please wait a moment and try again.",
            "error": "rate_limited",
        }
    )
