"""
Tests for the payment event consumer loop.
"""
from unittest.mock import Mock

import redis

from models.payment import PaymentStatus
from schemas.events import PaymentEventMessage, PaymentEventType
from services.event_channel import ReceivedMessage, RedisStreamChannel
from services.event_consumer import PaymentEventConsumer, log_payment_event


def _message(message_id, reference="PAY-00000001"):
    event = PaymentEventMessage(
        event_type=PaymentEventType.INITIATED,
        timestamp="2024-01-01T12:00:00+00:00",
        payment_id=f"payment-{message_id}",
        reference=reference,
        amount=25.0,
        currency="USD",
        status=PaymentStatus.PENDING,
        merchant_id="merchant-1",
        metadata={},
    )
    return ReceivedMessage(message_id=message_id, body=event.to_json(), attributes={"eventType": "payment-initiated"})


def _consumer(channel, handler=None, **kwargs):
    kwargs.setdefault("batch_size", 10)
    kwargs.setdefault("wait_seconds", 0)
    kwargs.setdefault("error_backoff_seconds", 5)
    return PaymentEventConsumer(channel, handler=handler or Mock(), **kwargs)


class TestPollOnce:
    def test_handles_and_deletes_batch(self):
        channel = Mock()
        channel.receive.return_value = [_message("1-0"), _message("2-0")]
        handler = Mock()

        handled = _consumer(channel, handler).poll_once()

        assert handled == 2
        assert handler.call_count == 2
        channel.receive.assert_called_once_with(max_messages=10, wait_seconds=0)
        assert [c.args[0] for c in channel.delete.call_args_list] == ["1-0", "2-0"]

    def test_handler_receives_parsed_event(self):
        channel = Mock()
        channel.receive.return_value = [_message("1-0", reference="PAY-ABCDEF12")]
        handler = Mock()

        _consumer(channel, handler).poll_once()

        event = handler.call_args.args[0]
        assert isinstance(event, PaymentEventMessage)
        assert event.reference == "PAY-ABCDEF12"
        assert event.event_type == PaymentEventType.INITIATED

    def test_failing_message_is_not_deleted(self):
        channel = Mock()
        channel.receive.return_value = [_message("1-0"), _message("2-0"), _message("3-0")]
        handler = Mock(side_effect=[None, RuntimeError("boom"), None])

        handled = _consumer(channel, handler).poll_once()

        assert handled == 2
        assert [c.args[0] for c in channel.delete.call_args_list] == ["1-0", "3-0"]

    def test_malformed_body_is_left_pending(self):
        channel = Mock()
        channel.receive.return_value = [
            ReceivedMessage(message_id="1-0", body="not json", attributes={}),
            _message("2-0"),
        ]
        handler = Mock()

        handled = _consumer(channel, handler).poll_once()

        assert handled == 1
        handler.assert_called_once()
        channel.delete.assert_called_once_with("2-0")

    def test_delete_failure_does_not_stop_batch(self):
        channel = Mock()
        channel.receive.return_value = [_message("1-0"), _message("2-0")]
        channel.delete.side_effect = [RuntimeError("redis down"), None]

        handled = _consumer(channel).poll_once()

        assert handled == 1
        assert channel.delete.call_count == 2

    def test_empty_batch(self):
        channel = Mock()
        channel.receive.return_value = []

        assert _consumer(channel).poll_once() == 0
        channel.delete.assert_not_called()

    def test_default_handler_accepts_event(self):
        channel = Mock()
        channel.receive.return_value = [_message("1-0")]

        consumer = PaymentEventConsumer(channel, batch_size=1, wait_seconds=0)

        assert consumer.handler is log_payment_event
        assert consumer.poll_once() == 1


class TestRun:
    def test_poll_error_backs_off_and_continues(self):
        channel = Mock()
        sleep = Mock()
        consumer = _consumer(channel, sleep=sleep)

        def receive(**kwargs):
            if channel.receive.call_count == 1:
                raise ConnectionError("redis unavailable")
            consumer.stop()
            return [_message("1-0")]

        channel.receive.side_effect = receive

        consumer.run()

        channel.ensure_group.assert_called_once()
        sleep.assert_called_once_with(5)
        assert channel.receive.call_count == 2
        channel.delete.assert_called_once_with("1-0")
        assert consumer.running is False

    def test_stop_ends_loop(self):
        channel = Mock()
        consumer = _consumer(channel)

        def receive(**kwargs):
            consumer.stop()
            return []

        channel.receive.side_effect = receive

        consumer.run()

        assert channel.receive.call_count == 1
        assert consumer.running is False

    def test_redis_down_at_startup_is_retried(self):
        """Test the consumer group is created once Redis comes back."""
        channel = Mock()
        channel.ensure_group.side_effect = [redis.ConnectionError("down"), None]
        sleep = Mock()
        consumer = _consumer(channel, sleep=sleep)

        def receive(**kwargs):
            consumer.stop()
            return [_message("1-0")]

        channel.receive.side_effect = receive

        consumer.run()

        assert channel.ensure_group.call_count == 2
        sleep.assert_called_once_with(5)
        channel.delete.assert_called_once_with("1-0")

    def test_group_recreated_after_loss(self, redis_client):
        """Test a stream wiped mid-run (Redis restart) gets its group back."""
        channel = RedisStreamChannel(redis_client, stream="lost-stream", group="lost-group", consumer_name="w")
        channel.publish_payment_event(PaymentEventMessage.model_validate_json(_message("x").body))
        handled = []

        def handler(event):
            handled.append(event)
            if len(handled) == 1:
                redis_client.delete("lost-stream")
            else:
                consumer.stop()

        def sleep(seconds):
            channel.publish_payment_event(event_after_restart)

        event_after_restart = PaymentEventMessage.model_validate_json(_message("y", reference="PAY-00000002").body)
        consumer = _consumer(channel, handler=handler, sleep=sleep)

        consumer.run()

        assert [e.reference for e in handled] == ["PAY-00000001", "PAY-00000002"]

    def test_other_response_errors_keep_group(self):
        channel = Mock()
        consumer = _consumer(channel, sleep=Mock())

        def receive(**kwargs):
            if channel.receive.call_count == 1:
                raise redis.ResponseError("BUSY Redis is busy running a script")
            consumer.stop()
            return []

        channel.receive.side_effect = receive

        consumer.run()

        channel.ensure_group.assert_called_once()
