from .jwt_handler import (
    MANAGE_ORDERS,
    MANAGE_SETTINGS,
    MANAGE_TRANSACTIONS,
    TokenClaims,
    create_access_token,
    decode_access_token,
)
from .api_key import verify_api_key
from .dependencies import (
    Principal,
    RequestMeta,
    get_current_principal,
    get_current_user,
    get_request_meta,
    require_permission,
    verify_internal_api_key,
)
from .rate_limiter import limiter, user_id_or_ip, rate_limit_exceeded_handler, RATE_LIMITS

__all__ = [
    "create_access_token",
    "decode_access_token",
    "TokenClaims",
    "MANAGE_ORDERS",
    "MANAGE_SETTINGS",
    "MANAGE_TRANSACTIONS",
    "verify_api_key",
    "Principal",
    "RequestMeta",
    "get_current_principal",
    "get_current_user",
    "get_request_meta",
    "require_permission",
    "verify_internal_api_key",
    "limiter",
    "user_id_or_ip",
    "rate_limit_exceeded_handler",
    "RATE_LIMITS",
]
