from typing import Optional

import jwt as pyjwt
import structlog
from sqlalchemy import func
from sqlalchemy.orm import Session

from core.config import settings
from core.errors import UnauthenticatedError, UnavailableError
from models.merchant import Merchant
from schemas.auth import LoginResponse, LogoutResponse
from security import jwt as jwt_utils
from security.password import verify_merchant_password
from services.token_store import TokenStore

logger = structlog.get_logger(__name__)


class IdentityProvider:
    """Authenticates merchants and issues/invalidates their bearer tokens."""

    def __init__(self, db: Session, token_store: TokenStore):
        self.db = db
        self.token_store = token_store

    def login(self, email: str, password: str) -> LoginResponse:
        merchant = (
            self.db.query(Merchant).filter(func.lower(Merchant.email) == email.lower()).one_or_none()
        )
        if not verify_merchant_password(merchant.password_hash if merchant else None, password):
            raise UnauthenticatedError("Invalid credentials")
        if not merchant.is_active:
            raise UnauthenticatedError("Merchant account is inactive")

        token = jwt_utils.create_access_token(merchant.id, extra={"email": merchant.email})
        claims = jwt_utils.decode_access(token)
        self.token_store.record_issued(claims["jti"], merchant.id, settings.JWT_EXPIRES_IN_SECONDS)

        logger.info("merchant_logged_in", merchant_id=merchant.id)
        return LoginResponse(
            access_token=token,
            merchant_id=merchant.id,
            email=merchant.email,
            name=merchant.name,
        )

    def authenticate(self, token: str) -> Merchant:
        claims = self._decode(token)
        try:
            revoked = self.token_store.is_revoked(claims["jti"])
        except UnavailableError:
            raise UnauthenticatedError("Authentication service unavailable")
        if revoked:
            raise UnauthenticatedError("Token has been revoked")

        merchant = self.db.get(Merchant, claims.get("sub"))
        if not merchant or not merchant.is_active:
            raise UnauthenticatedError("Merchant not found or inactive")
        return merchant

    def logout(self, token: str) -> LogoutResponse:
        claims = self._decode(token)
        self.token_store.revoke(claims["jti"], jwt_utils.remaining_lifetime(claims))
        logger.info("merchant_logged_out", merchant_id=claims.get("sub"))
        return LogoutResponse(success=True, message="You have been successfully logged out")

    @staticmethod
    def _decode(token: Optional[str]) -> dict:
        if not token:
            raise UnauthenticatedError("No token provided")
        try:
            claims = jwt_utils.decode_access(token)
        except pyjwt.PyJWTError:
            raise UnauthenticatedError("Invalid token")
        if claims.get("type") != "access" or not claims.get("jti") or not claims.get("sub"):
            raise UnauthenticatedError("Invalid token")
        return claims
