from functools import lru_cache
from typing import Optional

from passlib.context import CryptContext

_pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# bcrypt ignores everything past 72 bytes
_BCRYPT_MAX_BYTES = 72


def _truncate(password: str) -> str:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES].decode("utf-8", errors="ignore")


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return _pwd_context.hash("merchant-not-found")


def hash_password(password: str) -> str:
    return _pwd_context.hash(_truncate(password))


def verify_password(password: str, password_hash: str) -> bool:
    return _pwd_context.verify(_truncate(password), password_hash)


def verify_merchant_password(password_hash: Optional[str], password: str) -> bool:
    """Check a login attempt; unknown merchants still pay for one bcrypt round."""
    if password_hash is None:
        _pwd_context.verify(_truncate(password), _dummy_hash())
        return False
    return verify_password(password, password_hash)
