"""
Key for the maintenance endpoints triggered by the scheduler (the reservation
sweep). Without a configured key those endpoints stay closed.
"""
import secrets
from typing import Optional

import structlog

from shared.config.settings import get_settings

logger = structlog.get_logger(__name__)

INTERNAL_API_KEY: str = get_settings().INTERNAL_API_KEY

if not INTERNAL_API_KEY:
    logger.warning("internal_api_key_missing", detail="maintenance endpoints will reject every call")


def verify_api_key(provided_key: Optional[str]) -> bool:
    """Constant-time comparison against the configured key."""
    if not INTERNAL_API_KEY or not provided_key:
        return False
    return secrets.compare_digest(str(provided_key), INTERNAL_API_KEY)
