from typing import Any, Dict, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from models.payment import PaymentStatus


class PaymentWebhookIn(BaseModel):
    """Status notification posted by the payment gateway."""

    gateway_reference: str = Field(min_length=1)
    status: PaymentStatus
    gateway_response_code: Optional[str] = None
    error_message: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
