"""
Tests for the webhook ingestion handler.
"""
from unittest.mock import Mock

import pytest
from pydantic import ValidationError as SchemaError

from core.errors import ValidationError
from models.payment import Payment, PaymentStatus
from schemas.webhook import PaymentWebhookIn
from services.webhooks import WebhookIngestionHandler, signature_present


def _payload(**overrides):
    data = {"gatewayReference": "GATEWAY-123", "status": "COMPLETED"}
    data.update(overrides)
    return PaymentWebhookIn.model_validate(data)


class TestSignatureCheck:
    @pytest.mark.parametrize("signature", [None, ""])
    def test_missing_signature_rejected_before_lookup(self, signature):
        manager = Mock()
        handler = WebhookIngestionHandler(manager)

        with pytest.raises(ValidationError, match="signature"):
            handler.process_payment_webhook(signature, "PAY-ABC", _payload())
        manager.apply_status_update.assert_not_called()

    def test_any_non_empty_signature_is_accepted(self):
        assert signature_present("anything", "PAY-ABC", _payload()) is True
        assert signature_present("   ", "PAY-ABC", _payload()) is True

    def test_custom_verifier(self):
        manager = Mock()
        verifier = Mock(return_value=False)
        handler = WebhookIngestionHandler(manager, verify_signature=verifier)
        payload = _payload()

        with pytest.raises(ValidationError):
            handler.process_payment_webhook("sig", "PAY-ABC", payload)
        verifier.assert_called_once_with("sig", "PAY-ABC", payload)
        manager.apply_status_update.assert_not_called()


class TestDelegation:
    def test_payload_is_passed_through(self):
        manager = Mock()
        handler = WebhookIngestionHandler(manager)
        payload = _payload(gatewayResponseCode="00", errorMessage=None, metadata={"authCode": "123456"})

        result = handler.process_payment_webhook("sig", "PAY-ABC", payload)

        manager.apply_status_update.assert_called_once_with(
            "PAY-ABC",
            status=PaymentStatus.COMPLETED,
            gateway_reference="GATEWAY-123",
            gateway_response_code="00",
            error_message=None,
            metadata={"authCode": "123456"},
        )
        assert result is manager.apply_status_update.return_value


class TestWebhookFlow:
    """Handler wired to a real lifecycle manager."""

    def test_create_complete_replay(self, manager, publisher, db, merchant, payment_method):
        handler = WebhookIngestionHandler(manager)
        created = manager.create_payment(
            merchant.id, amount="100.50", currency="USD", payment_method_id=payment_method.id
        )
        assert created.status == PaymentStatus.PENDING

        first = handler.process_payment_webhook("sig", created.reference, _payload())
        stored = db.query(Payment).filter(Payment.reference == created.reference).one()
        assert first.status == PaymentStatus.COMPLETED
        assert stored.completed_at is not None
        assert publisher.event_types() == ["payment-initiated", "payment-completed"]

        replay = handler.process_payment_webhook("sig", created.reference, _payload())
        assert replay == first
        assert publisher.event_types() == ["payment-initiated", "payment-completed"]

    def test_failed_then_completed_stays_failed(self, manager, publisher, merchant, payment_method):
        handler = WebhookIngestionHandler(manager)
        created = manager.create_payment(merchant.id, amount="20.00", payment_method_id=payment_method.id)

        handler.process_payment_webhook(
            "sig", created.reference, _payload(status="FAILED", errorMessage="Insufficient funds")
        )
        result = handler.process_payment_webhook("sig", created.reference, _payload())

        assert result.status == PaymentStatus.FAILED
        assert publisher.event_types() == ["payment-initiated", "payment-failed"]


class TestPayloadSchema:
    def test_snake_case_accepted(self):
        payload = PaymentWebhookIn(gateway_reference="GW", status=PaymentStatus.FAILED)
        assert payload.gateway_reference == "GW"

    def test_invalid_status_rejected(self):
        with pytest.raises(SchemaError):
            _payload(status="SETTLED")

    def test_gateway_reference_required(self):
        with pytest.raises(SchemaError):
            PaymentWebhookIn.model_validate({"status": "COMPLETED"})
