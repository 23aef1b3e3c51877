import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt

from core.config import settings


def create_access_token(sub: str, extra: Dict[str, Any] | None = None, expires_in_seconds: int | None = None) -> str:
    """Issue a bearer token for a merchant. Every token carries a unique ``jti``."""
    now = datetime.now(timezone.utc)
    ttl = expires_in_seconds if expires_in_seconds is not None else settings.JWT_EXPIRES_IN_SECONDS
    payload = {
        "sub": sub,
        "type": "access",
        "jti": str(uuid.uuid4()),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl)).timestamp()),
    }
    if extra:
        payload.update(extra)
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def decode_access(token: str) -> Dict[str, Any]:
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])


def remaining_lifetime(claims: Dict[str, Any]) -> int:
    """Seconds until the token expires, never negative."""
    now = int(datetime.now(timezone.utc).timestamp())
    return max(int(claims.get("exp", now)) - now, 0)
