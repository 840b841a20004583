import math

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from fastapi import Request
from fastapi.responses import JSONResponse
from .jwt_handler import decode_access_token
from shared.errors import RateLimitedError

# Pre-configured tiers
RATE_LIMITS = {
    "auth": "5/minute",
    "sensitive": "10/minute",
    "standard": "30/minute",
    "public": "100/minute",
}

def user_id_or_ip(request: Request) -> str:
    """
    Key function for SlowAPI.
    Extracts the user ID directly from the Authorization header if available.
    Falls back to the client's IP address if unauthenticated.
    """
    auth_header = request.headers.get("Authorization")

    # Try to extract User ID from JWT
    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header.split(" ")[1]
        claims = decode_access_token(token)
        if claims is not None:
            return f"user:{claims.user_id}"

    # Fallback to IP address (handles proxies if X-Forwarded-For is set correctly by Uvicorn)
    return f"ip:{get_remote_address(request)}"


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 in the shared ``{error}`` shape, with Retry-After in seconds."""
    retry_after = 60
    limit = getattr(exc, "limit", None)
    if limit is not None:
        retry_after = max(1, math.ceil(limit.limit.get_expiry()))
    error = RateLimitedError(
        "Too many requests. Please try again later.",
        details={"retryAfter": retry_after},
        headers={"Retry-After": str(retry_after)},
    )
    return JSONResponse(status_code=error.status_code, content=error.to_payload(), headers=error.headers)

# Initialize the Limiter with our custom key function
limiter = Limiter(key_func=user_id_or_ip)
