from typing import Optional

from fastapi import APIRouter, Depends, Header

from core.dependencies import get_webhook_handler
from schemas.payment import PaymentOut
from schemas.webhook import PaymentWebhookIn
from services.webhooks import WebhookIngestionHandler

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/payment/{reference}", response_model=PaymentOut)
def process_payment_webhook(
    reference: str,
    data: PaymentWebhookIn,
    signature: Optional[str] = Header(default=None, alias="X-Webhook-Signature"),
    handler: WebhookIngestionHandler = Depends(get_webhook_handler),
):
    return handler.process_payment_webhook(signature, reference, data)
