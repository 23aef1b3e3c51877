import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Numeric, JSON, Integer, Enum, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.db import Base


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


# Webhooks never move a payment out of these
TERMINAL_STATUSES = frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED})


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    merchant_id: Mapped[str] = mapped_column(ForeignKey("merchants.id", ondelete="RESTRICT"), index=True)
    payment_method_id: Mapped[str] = mapped_column(ForeignKey("payment_methods.id", ondelete="RESTRICT"), index=True)
    reference: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, native_enum=False, length=20),
        default=PaymentStatus.PENDING,
        index=True,
    )
    # "metadata" is reserved on declarative classes
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    gateway_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    gateway_response_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    version: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    merchant = relationship("Merchant")
    payment_method = relationship("PaymentMethod")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
