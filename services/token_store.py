import redis
import structlog

from core.errors import UnavailableError

logger = structlog.get_logger(__name__)

TOKEN_PREFIX = "tokens:"
BLACKLIST_PREFIX = "blacklist:"


class TokenStore:
    """
    Redis bookkeeping for issued and revoked bearer tokens, keyed by ``jti``.

    ``required`` decides what an unreachable Redis means: with it set, every
    operation raises ``UnavailableError``; without it the failure is logged
    and the operation is skipped (revocation checks then report "not revoked").
    """

    def __init__(self, client: redis.Redis, required: bool = True):
        self.client = client
        self.required = required

    def record_issued(self, jti: str, merchant_id: str, ttl_seconds: int) -> None:
        self._call("record_issued", lambda: self.client.set(f"{TOKEN_PREFIX}{jti}", merchant_id, ex=ttl_seconds))

    def revoke(self, jti: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            return
        self._call("revoke", lambda: self.client.set(f"{BLACKLIST_PREFIX}{jti}", "1", ex=ttl_seconds))

    def is_revoked(self, jti: str) -> bool:
        return bool(self._call("is_revoked", lambda: self.client.exists(f"{BLACKLIST_PREFIX}{jti}")))

    def _call(self, operation: str, fn):
        try:
            return fn()
        except redis.RedisError as exc:
            if self.required:
                logger.error("token_store_unavailable", operation=operation, error=str(exc))
                raise UnavailableError("Authentication service unavailable") from exc
            logger.warning("token_store_degraded", operation=operation, error=str(exc))
            return None
