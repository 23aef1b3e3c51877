"""
Long-polling consumer for payment lifecycle events.

Messages are fetched in batches, handled one by one and deleted only after the
handler succeeds. A failing message is logged and left pending; its siblings
in the batch are still handled and deleted. Errors while polling back off for
a fixed interval before the next poll. The consumer group is created from
inside the loop and created again after it goes missing.
"""
import time
from typing import Callable, Optional

import redis
import structlog

from core.config import settings
from schemas.events import PaymentEventMessage
from services.event_channel import ReceivedMessage, RedisStreamChannel

logger = structlog.get_logger(__name__)

EventHandler = Callable[[PaymentEventMessage], None]


def log_payment_event(event: PaymentEventMessage) -> None:
    """Default handler: record the event details."""
    logger.info(
        "payment_event_received",
        event_type=event.event_type.value,
        payment_id=event.payment_id,
        payment_reference=event.reference,
        amount=event.amount,
        currency=event.currency,
        status=event.status.value,
        merchant_id=event.merchant_id,
        timestamp=event.timestamp,
    )


class PaymentEventConsumer:
    def __init__(
        self,
        channel: RedisStreamChannel,
        handler: EventHandler = log_payment_event,
        batch_size: Optional[int] = None,
        wait_seconds: Optional[int] = None,
        error_backoff_seconds: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.channel = channel
        self.handler = handler
        self.batch_size = batch_size or settings.EVENT_BATCH_SIZE
        self.wait_seconds = settings.EVENT_WAIT_SECONDS if wait_seconds is None else wait_seconds
        self.error_backoff_seconds = (
            settings.EVENT_POLL_BACKOFF_SECONDS if error_backoff_seconds is None else error_backoff_seconds
        )
        self._sleep = sleep
        self._running = False
        self._group_ready = False

    @property
    def running(self) -> bool:
        return self._running

    def poll_once(self) -> int:
        """Fetch one batch and handle it. Returns the number of messages deleted."""
        messages = self.channel.receive(max_messages=self.batch_size, wait_seconds=self.wait_seconds)
        handled = 0
        for message in messages:
            if self._handle(message):
                handled += 1
        return handled

    def run(self) -> None:
        if self._running:
            return
        self._running = True
        logger.info("event_consumer_started", stream=self.channel.stream, group=self.channel.group)

        while self._running:
            try:
                if not self._group_ready:
                    self.channel.ensure_group()
                    self._group_ready = True
                self.poll_once()
            except redis.ResponseError as exc:
                # Stream or group gone, e.g. Redis restarted without persistence
                if "NOGROUP" in str(exc):
                    self._group_ready = False
                self._backoff(exc)
            except Exception as exc:
                self._backoff(exc)

        logger.info("event_consumer_stopped", stream=self.channel.stream)

    def stop(self) -> None:
        self._running = False

    def _backoff(self, exc: Exception) -> None:
        logger.error("event_consumer_poll_failed", error=str(exc), backoff_seconds=self.error_backoff_seconds)
        self._sleep(self.error_backoff_seconds)

    def _handle(self, message: ReceivedMessage) -> bool:
        try:
            event = PaymentEventMessage.model_validate_json(message.body)
            self.handler(event)
        except Exception:
            logger.exception(
                "payment_event_processing_failed",
                message_id=message.message_id,
                event_type=message.attributes.get("eventType"),
            )
            return False

        try:
            self.channel.delete(message.message_id)
        except Exception:
            # Redelivered after the visibility timeout; handlers must tolerate duplicates
            logger.exception("payment_event_delete_failed", message_id=message.message_id)
            return False
        return True
