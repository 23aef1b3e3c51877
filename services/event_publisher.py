import structlog

from schemas.events import PaymentEventMessage
from services.event_channel import RedisStreamChannel
from tasks.event_tasks import publish_payment_event_task

logger = structlog.get_logger(__name__)


class PaymentEventPublisher:
    """
    Hands lifecycle events to the event channel.

    With ``use_celery`` the event is queued as a Celery task, which retries
    with backoff on its own; if the task cannot be queued the event is written
    to the stream directly. Errors from the direct write propagate, callers
    decide whether a failed publish matters.
    """

    def __init__(self, channel: RedisStreamChannel, use_celery: bool = True):
        self.channel = channel
        self.use_celery = use_celery

    def publish_payment_event(self, message: PaymentEventMessage) -> None:
        if self.use_celery:
            try:
                publish_payment_event_task.delay(message.to_dict())
                logger.debug(
                    "payment_event_task_queued",
                    event_type=message.event_type.value,
                    payment_reference=message.reference,
                )
                return
            except Exception as exc:
                logger.warning(
                    "payment_event_task_enqueue_failed",
                    event_type=message.event_type.value,
                    payment_reference=message.reference,
                    error=str(exc),
                )

        self.channel.publish_payment_event(message)
