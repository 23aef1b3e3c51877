from typing import Any, Dict, Optional

import structlog
from celery.signals import worker_init, worker_process_init, worker_process_shutdown

from core.celery import celery_app
from core.errors import UnavailableError
from schemas.events import PaymentEventMessage
from services.event_channel import RedisStreamChannel, create_redis_client

logger = structlog.get_logger(__name__)

# Opened once per worker process, see open_event_channel
_channel: Optional[RedisStreamChannel] = None


@worker_init.connect
@worker_process_init.connect
def open_event_channel(**kwargs) -> None:
    global _channel
    if _channel is None:
        _channel = RedisStreamChannel.from_settings(create_redis_client())
        logger.info("event_task_channel_opened", stream=_channel.stream)


@worker_process_shutdown.connect
def close_event_channel(**kwargs) -> None:
    global _channel
    if _channel is not None:
        _channel.client.close()
        _channel = None


def get_event_channel() -> RedisStreamChannel:
    if _channel is None:
        raise RuntimeError("Event channel is not open in this process")
    return _channel


@celery_app.task(bind=True, max_retries=3)
def publish_payment_event_task(self, message: Dict[str, Any]):
    """
    Publish a lifecycle event to the stream from a Celery worker.
    Retries up to 3 times with exponential backoff while Redis is unreachable.
    """
    event = PaymentEventMessage.model_validate(message)
    try:
        message_id = get_event_channel().publish_payment_event(event)
    except UnavailableError as exc:
        countdown = min(2 ** self.request.retries, 60)
        logger.warning(
            "payment_event_publish_retry",
            payment_reference=event.reference,
            event_type=event.event_type.value,
            retries=self.request.retries,
            countdown=countdown,
            error=str(exc),
        )
        raise self.retry(exc=exc, countdown=countdown)

    return {"status": "published", "message_id": message_id, "reference": event.reference}
