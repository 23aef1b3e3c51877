from typing import Optional

import redis
from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from core.db import get_db
from models.merchant import Merchant
from services.event_publisher import PaymentEventPublisher
from services.identity import IdentityProvider
from services.payments import PaymentLifecycleManager
from services.token_store import TokenStore
from services.webhooks import WebhookIngestionHandler


# Collaborator clients are created once in the application lifespan (see main.py)
def get_redis(request: Request) -> redis.Redis:
    return request.app.state.redis


def get_event_publisher(request: Request) -> PaymentEventPublisher:
    return request.app.state.event_publisher


def get_token_store(request: Request) -> TokenStore:
    return request.app.state.token_store


def get_identity_provider(
    db: Session = Depends(get_db), token_store: TokenStore = Depends(get_token_store)
) -> IdentityProvider:
    return IdentityProvider(db, token_store)


def get_bearer_token(authorization: Optional[str] = Header(default=None, alias="Authorization")) -> Optional[str]:
    """Extract the token from ``Authorization: Bearer <token>``; None when absent or malformed."""
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    return authorization.split(" ", 1)[1].strip() or None


def get_current_merchant(
    token: Optional[str] = Depends(get_bearer_token),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> Merchant:
    return identity.authenticate(token)


def get_payment_manager(
    db: Session = Depends(get_db), publisher: PaymentEventPublisher = Depends(get_event_publisher)
) -> PaymentLifecycleManager:
    return PaymentLifecycleManager(db, publisher)


def get_webhook_handler(manager: PaymentLifecycleManager = Depends(get_payment_manager)) -> WebhookIngestionHandler:
    return WebhookIngestionHandler(manager)
