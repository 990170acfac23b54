"""Bearer-token helpers: the HTTP layer turns tokens into a ``Caller``."""

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, Optional, cast

import jwt

from .core.config import settings

logger = logging.getLogger(__name__)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Decode and verify a JWT access token. Raises ``jwt.PyJWTError`` on failure."""
    payload = jwt.decode(
        token,
        settings.secret_key.get_secret_value(),
        algorithms=[settings.jwt_algorithm],
        options={"require": ["sub", "exp"]},
    )
    return cast(Dict[str, Any], payload)


def create_access_token(
    subject: str, role: str, expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a JWT access token.

    Args:
        subject: User id placed in ``sub``
        role: Caller role the token acts in (renter or host)
        expires_delta: Optional expiration time delta
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    return jwt.encode(
        {"sub": subject, "role": role, "exp": expire},
        settings.secret_key.get_secret_value(),
        algorithm=settings.jwt_algorithm,
    )
