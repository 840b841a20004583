"""
Bearer tokens for the storefront API.

Tokens are minted by the identity provider; this service only verifies them.
The payload carries ``sub`` (the customer or staff user id) and a
``permissions`` list granting the back-office operations below.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from jose import JWTError, jwt

from shared.config.settings import get_settings

SECRET_KEY = get_settings().JWT_SECRET_KEY
if not SECRET_KEY:
    raise ValueError("FATAL ERROR: JWT_SECRET_KEY is not set in the environment!")

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60

# Back-office permissions carried in the ``permissions`` claim
MANAGE_ORDERS = "MANAGE_ORDERS"
MANAGE_TRANSACTIONS = "MANAGE_TRANSACTIONS"
MANAGE_SETTINGS = "MANAGE_SETTINGS"


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    permissions: frozenset = field(default_factory=frozenset)


def create_access_token(
    user_id: str,
    permissions: Iterable[str] = (),
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Signs a token for ``user_id``. Used by internal tooling and the test suite."""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": user_id, "permissions": sorted(set(permissions)), "exp": expire}
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Optional[TokenClaims]:
    """Verifies signature and expiry. None for bad tokens and tokens without a subject."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None
    permissions = payload.get("permissions")
    if not isinstance(permissions, list):
        permissions = []
    return TokenClaims(user_id=str(user_id), permissions=frozenset(str(p) for p in permissions))
