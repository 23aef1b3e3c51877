"""
Payment lifecycle: creation, lookup, listing and status transitions.

State machine::

    PENDING -> PROCESSING -> COMPLETED | FAILED
                              (REFUNDED is only set out-of-band)

COMPLETED and FAILED are terminal. A status update aimed at a terminal payment
is a no-op that returns the current projection, so gateway retries are safe.
Status writes are conditional on the row version and a non-terminal status, so
two racing updates for the same reference cannot both get past the check.

Every successful write publishes a lifecycle event. Publishing is best effort:
a failure is logged and never undoes or fails the write.
"""
import math
import re
import uuid
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Protocol

import structlog
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import settings
from core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from models.merchant import Merchant
from models.payment import Payment, PaymentStatus, TERMINAL_STATUSES
from models.payment_method import PaymentMethod
from schemas.events import PaymentEventMessage, PaymentEventType
from schemas.payment import (
    PaginatedPayments,
    PaginationMeta,
    PaymentMethodList,
    PaymentMethodOut,
    PaymentOut,
)
from services.masking import mask_configuration

logger = structlog.get_logger(__name__)

REFERENCE_PREFIX = "PAY-"
_CURRENCY_PATTERN = re.compile(r"^[A-Za-z]{3}$")
_CENT = Decimal("0.01")
# Numeric(10, 2)
_MAX_AMOUNT = Decimal("99999999.99")


class EventPublisher(Protocol):
    def publish_payment_event(self, message: PaymentEventMessage) -> None:
        ...


def generate_reference() -> str:
    return f"{REFERENCE_PREFIX}{uuid.uuid4().hex[:8].upper()}"


def merge_metadata(existing: Optional[Dict[str, Any]], patch: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Shallow last-writer-wins merge: patch keys replace existing ones, other keys survive."""
    merged: Dict[str, Any] = dict(existing or {})
    for key, value in (patch or {}).items():
        merged[key] = value
    return merged


def event_type_for_status(status: PaymentStatus) -> PaymentEventType:
    if status == PaymentStatus.COMPLETED:
        return PaymentEventType.COMPLETED
    if status == PaymentStatus.FAILED:
        return PaymentEventType.FAILED
    # PENDING, PROCESSING and REFUNDED have no event type of their own yet
    return PaymentEventType.INITIATED


def _to_amount(amount: Any) -> Decimal:
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise ValidationError("Amount must be a number")
    if not value.is_finite() or value <= 0:
        raise ValidationError("Amount must be greater than 0")
    if value != value.quantize(_CENT):
        raise ValidationError("Amount must have at most 2 decimal places")
    if value > _MAX_AMOUNT:
        raise ValidationError(f"Amount must not exceed {_MAX_AMOUNT}")
    return value.quantize(_CENT)


def _to_currency(currency: Optional[str]) -> str:
    if not currency:
        return settings.DEFAULT_CURRENCY
    if not _CURRENCY_PATTERN.match(currency):
        raise ValidationError("Currency must be a 3-letter code")
    return currency.upper()


class PaymentLifecycleManager:
    def __init__(
        self,
        db: Session,
        publisher: EventPublisher,
        reference_max_attempts: Optional[int] = None,
        status_update_max_attempts: Optional[int] = None,
    ):
        self.db = db
        self.publisher = publisher
        self.reference_max_attempts = reference_max_attempts or settings.REFERENCE_MAX_ATTEMPTS
        self.status_update_max_attempts = status_update_max_attempts or settings.STATUS_UPDATE_MAX_ATTEMPTS

    def create_payment(
        self,
        merchant_id: str,
        amount: Any,
        payment_method_id: str,
        currency: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
    ) -> PaymentOut:
        merchant = self.db.get(Merchant, merchant_id)
        if not merchant:
            raise NotFoundError(f"Merchant with ID {merchant_id} not found")

        # Scoped to the merchant so another tenant's payment method is never usable
        payment_method = (
            self.db.query(PaymentMethod)
            .filter(PaymentMethod.id == payment_method_id, PaymentMethod.merchant_id == merchant_id)
            .one_or_none()
        )
        if not payment_method:
            raise NotFoundError(f"Payment method with ID {payment_method_id} not found for this merchant")

        value = _to_amount(amount)
        code = _to_currency(currency)

        payment = None
        for attempt in range(1, self.reference_max_attempts + 1):
            payment = Payment(
                reference=generate_reference(),
                amount=value,
                currency=code,
                status=PaymentStatus.PENDING,
                metadata_=merge_metadata(None, metadata),
                ip_address=ip_address,
                merchant_id=merchant.id,
                payment_method_id=payment_method.id,
            )
            self.db.add(payment)
            try:
                self.db.commit()
                break
            except IntegrityError:
                # The unique index on reference is the only uniqueness check
                self.db.rollback()
                logger.warning(
                    "payment_reference_collision",
                    payment_reference=payment.reference,
                    attempt=attempt,
                )
        else:
            raise ConflictError("Could not allocate a unique payment reference, please retry")

        self.db.refresh(payment)
        logger.info(
            "payment_created",
            payment_id=payment.id,
            payment_reference=payment.reference,
            merchant_id=merchant.id,
            amount=str(payment.amount),
            currency=payment.currency,
        )

        self._publish(PaymentEventMessage.from_payment(PaymentEventType.INITIATED, payment))
        return PaymentOut.model_validate(payment)

    def get_by_reference(self, reference: str, requesting_merchant_id: str) -> PaymentOut:
        payment = self._find_by_reference(reference)
        if not payment:
            raise NotFoundError(f"Payment with reference {reference} not found")
        if payment.merchant_id != requesting_merchant_id:
            raise ForbiddenError("You can only access your own payments")
        return PaymentOut.model_validate(payment)

    def list_by_merchant(self, merchant_id: str, page: int = 1, limit: int = 10) -> PaginatedPayments:
        """Newest first. No upper bound on ``limit`` here; callers cap it."""
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be at least 1")

        query = self.db.query(Payment).filter(Payment.merchant_id == merchant_id)
        total = query.count()
        payments = (
            query.order_by(Payment.created_at.desc(), Payment.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return PaginatedPayments(
            data=[PaymentOut.model_validate(p) for p in payments],
            meta=PaginationMeta(total=total, page=page, limit=limit, page_count=math.ceil(total / limit)),
        )

    def get_merchant_payment_methods(self, merchant_id: str) -> PaymentMethodList:
        methods = (
            self.db.query(PaymentMethod)
            .filter(PaymentMethod.merchant_id == merchant_id)
            .order_by(PaymentMethod.created_at.desc())
            .all()
        )
        items = [
            PaymentMethodOut(
                id=m.id,
                type=m.type,
                name=m.name,
                active=m.active,
                configuration=mask_configuration(m.configuration),
                merchant_id=m.merchant_id,
                created_at=m.created_at,
                updated_at=m.updated_at,
            )
            for m in methods
        ]
        return PaymentMethodList(payment_methods=items, total=len(items))

    def apply_status_update(
        self,
        reference: str,
        status: PaymentStatus,
        gateway_reference: Optional[str],
        gateway_response_code: Optional[str] = None,
        error_message: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentOut:
        new_status = PaymentStatus(status)

        for attempt in range(1, self.status_update_max_attempts + 1):
            payment = self._find_by_reference(reference)
            if not payment:
                raise NotFoundError(f"Payment with reference {reference} not found")

            if payment.is_terminal:
                logger.info(
                    "payment_already_terminal",
                    payment_reference=reference,
                    status=payment.status.value,
                    requested_status=new_status.value,
                )
                return PaymentOut.model_validate(payment)

            if self._transition(payment, new_status, gateway_reference, gateway_response_code, error_message, metadata):
                break

            logger.info("payment_status_update_contended", payment_reference=reference, attempt=attempt)
        else:
            raise ConflictError(f"Payment {reference} is being updated concurrently, please retry")

        logger.info(
            "payment_status_updated",
            payment_reference=reference,
            status=payment.status.value,
            gateway_reference=payment.gateway_reference,
        )

        self._publish(
            PaymentEventMessage.from_payment(event_type_for_status(payment.status), payment, include_gateway=True)
        )
        return PaymentOut.model_validate(payment)

    def _find_by_reference(self, reference: str) -> Optional[Payment]:
        return (
            self.db.query(Payment)
            .filter(Payment.reference == reference)
            .populate_existing()
            .one_or_none()
        )

    def _transition(
        self,
        payment: Payment,
        new_status: PaymentStatus,
        gateway_reference: Optional[str],
        gateway_response_code: Optional[str],
        error_message: Optional[str],
        metadata: Optional[Dict[str, Any]],
    ) -> bool:
        """Compare-and-swap write; False when the row changed since it was read."""
        now = datetime.utcnow()
        values = {
            Payment.status: new_status,
            Payment.gateway_reference: gateway_reference,
            Payment.gateway_response_code: gateway_response_code,
            Payment.error_message: error_message,
            Payment.metadata_: merge_metadata(payment.metadata_, metadata),
            Payment.version: payment.version + 1,
            Payment.updated_at: now,
        }
        if new_status == PaymentStatus.COMPLETED:
            values[Payment.completed_at] = now

        result = self.db.execute(
            update(Payment)
            .where(
                Payment.id == payment.id,
                Payment.version == payment.version,
                Payment.status.notin_(list(TERMINAL_STATUSES)),
            )
            .values(values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            return False

        self.db.commit()
        self.db.refresh(payment)
        return True

    def _publish(self, message: PaymentEventMessage) -> None:
        try:
            self.publisher.publish_payment_event(message)
        except Exception:
            logger.exception(
                "payment_event_publish_failed",
                event_type=message.event_type.value,
                payment_reference=message.reference,
            )
