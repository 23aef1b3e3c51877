from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

from models.payment import PaymentStatus
from models.payment_method import PaymentMethodType


class PaymentCreate(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    currency: str = Field(default="USD", pattern=r"^[A-Za-z]{3}$")
    payment_method_id: str = Field(min_length=1)
    metadata: Optional[Dict[str, Any]] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class PaymentOut(BaseModel):
    id: str
    reference: str
    amount: Decimal
    currency: str
    status: PaymentStatus
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True


class PaginationMeta(BaseModel):
    total: int
    page: int
    limit: int
    page_count: int

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class PaginatedPayments(BaseModel):
    data: List[PaymentOut]
    meta: PaginationMeta


class PaymentMethodOut(BaseModel):
    id: str
    type: PaymentMethodType
    name: str
    active: bool
    configuration: Dict[str, Any]
    merchant_id: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True


class PaymentMethodList(BaseModel):
    payment_methods: List[PaymentMethodOut]
    total: int

    class Config:
        alias_generator = to_camel
        populate_by_name = True
