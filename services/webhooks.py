from typing import Callable, Optional

import structlog

from core.errors import ValidationError
from schemas.payment import PaymentOut
from schemas.webhook import PaymentWebhookIn
from services.payments import PaymentLifecycleManager

logger = structlog.get_logger(__name__)

# (signature, reference, payload) -> accepted?
SignatureVerifier = Callable[[Optional[str], str, PaymentWebhookIn], bool]


def signature_present(signature: Optional[str], reference: str, payload: PaymentWebhookIn) -> bool:
    """Presence-only check. The gateway's signature is not verified cryptographically."""
    return bool(signature)


class WebhookIngestionHandler:
    """
    Applies gateway status notifications to payments.

    Gateways deliver at least once; the lifecycle manager's terminal-state
    check makes a replay observationally identical to the first delivery.
    """

    def __init__(self, manager: PaymentLifecycleManager, verify_signature: SignatureVerifier = signature_present):
        self.manager = manager
        self.verify_signature = verify_signature

    def process_payment_webhook(self, signature: Optional[str], reference: str, payload: PaymentWebhookIn) -> PaymentOut:
        if not self.verify_signature(signature, reference, payload):
            logger.warning("webhook_signature_rejected", payment_reference=reference)
            raise ValidationError("Webhook signature missing")

        logger.info(
            "webhook_received",
            payment_reference=reference,
            status=payload.status.value,
            gateway_reference=payload.gateway_reference,
        )
        return self.manager.apply_status_update(
            reference,
            status=payload.status,
            gateway_reference=payload.gateway_reference,
            gateway_response_code=payload.gateway_response_code,
            error_message=payload.error_message,
            metadata=payload.metadata,
        )
