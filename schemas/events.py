import enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from models.payment import Payment, PaymentStatus


class PaymentEventType(str, enum.Enum):
    INITIATED = "payment-initiated"
    COMPLETED = "payment-completed"
    FAILED = "payment-failed"


class PaymentEventMessage(BaseModel):
    """Lifecycle event body as it travels on the event stream (camelCase JSON)."""

    event_type: PaymentEventType
    timestamp: str
    payment_id: str
    reference: str
    amount: float
    currency: str
    status: PaymentStatus
    merchant_id: str
    metadata: Optional[Dict[str, Any]] = None
    gateway_reference: Optional[str] = None
    error_message: Optional[str] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True

    @classmethod
    def from_payment(cls, event_type: PaymentEventType, payment: Payment, include_gateway: bool = False) -> "PaymentEventMessage":
        message = cls(
            event_type=event_type,
            timestamp=datetime.now(timezone.utc).isoformat(),
            payment_id=payment.id,
            reference=payment.reference,
            amount=float(payment.amount),
            currency=payment.currency,
            status=payment.status,
            merchant_id=payment.merchant_id,
            metadata=payment.metadata_,
        )
        if include_gateway:
            message.gateway_reference = payment.gateway_reference
            message.error_message = payment.error_message
        return message

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
