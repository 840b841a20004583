from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer
from .jwt_handler import decode_access_token
from .api_key import verify_api_key
from shared.errors import ForbiddenError, UnauthorizedError

# Bearer tokens are issued by the identity provider
bearer_scheme = HTTPBearer(auto_error=False)

# Defines the expected internal service header
api_key_header = APIKeyHeader(name="X-Internal-API-Key", auto_error=False)


@dataclass(frozen=True)
class Principal:
    user_id: str
    permissions: frozenset = field(default_factory=frozenset)

    def can(self, permission: str) -> bool:
        return permission in self.permissions


@dataclass(frozen=True)
class RequestMeta:
    ip_address: str
    user_agent: str


async def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Principal:
    """Dependency to validate JWT and return the caller with its permission claims."""
    credentials_exception = UnauthorizedError(
        "Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None or not credentials.credentials:
        raise credentials_exception

    claims = decode_access_token(credentials.credentials)
    if claims is None:
        raise credentials_exception

    # Store in request state for downstream use (like rate limiting)
    request.state.user_id = claims.user_id
    return Principal(user_id=claims.user_id, permissions=claims.permissions)


async def get_current_user(principal: Principal = Depends(get_current_principal)) -> str:
    """Dependency returning only the user ID (sub)."""
    return principal.user_id


def require_permission(permission: str):
    """Dependency factory: 403 unless the caller's token carries ``permission``."""

    async def checker(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not principal.can(permission):
            raise ForbiddenError("Not authorized")
        return principal

    return checker


def get_request_meta(request: Request) -> RequestMeta:
    forwarded_for = request.headers.get("x-forwarded-for")
    real_ip = request.headers.get("x-real-ip")
    if forwarded_for:
        ip = forwarded_for.split(",")[0].strip()
    elif real_ip:
        ip = real_ip
    elif request.client:
        ip = request.client.host
    else:
        ip = "unknown"
    return RequestMeta(ip_address=ip, user_agent=request.headers.get("user-agent", "unknown"))


async def verify_internal_api_key(api_key: str = Depends(api_key_header)) -> bool:
    """Dependency to validate service-to-service internal requests."""
    if not verify_api_key(api_key):
        raise ForbiddenError("Invalid or missing X-Internal-API-Key header")
    return True
