"""
Redis Stream backed event channel for payment lifecycle events.

Each stream entry has two fields: ``body`` (the JSON event) and ``eventType``
(the routing attribute subscribers filter on). Consumers read through a
consumer group; an entry stays pending until :meth:`RedisStreamChannel.delete`
acknowledges it, and entries left pending longer than the visibility timeout
are handed out again.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import redis
import structlog

from core.config import settings
from core.errors import UnavailableError
from schemas.events import PaymentEventMessage

logger = structlog.get_logger(__name__)


@dataclass
class ReceivedMessage:
    message_id: str
    body: str
    attributes: Dict[str, str] = field(default_factory=dict)


def create_redis_client(url: Optional[str] = None) -> redis.Redis:
    # Connections are opened lazily on first command
    return redis.from_url(url or settings.REDIS_URL, decode_responses=True)


class RedisStreamChannel:
    def __init__(
        self,
        client: redis.Redis,
        stream: str,
        group: str,
        consumer_name: str,
        maxlen: Optional[int] = None,
        visibility_timeout_seconds: Optional[int] = None,
    ):
        self.client = client
        self.stream = stream
        self.group = group
        self.consumer_name = consumer_name
        self.maxlen = maxlen
        self.visibility_timeout_seconds = visibility_timeout_seconds
        self._claim_cursor = "0-0"

    @classmethod
    def from_settings(cls, client: redis.Redis) -> "RedisStreamChannel":
        return cls(
            client,
            stream=settings.EVENT_STREAM_NAME,
            group=settings.EVENT_CONSUMER_GROUP,
            consumer_name=settings.EVENT_CONSUMER_NAME,
            maxlen=settings.EVENT_STREAM_MAXLEN,
            visibility_timeout_seconds=settings.EVENT_VISIBILITY_TIMEOUT_SECONDS,
        )

    def publish_payment_event(self, message: PaymentEventMessage) -> str:
        """Append an event to the stream and return its entry id."""
        fields = {"body": message.to_json(), "eventType": message.event_type.value}
        try:
            if self.maxlen:
                message_id = self.client.xadd(self.stream, fields, maxlen=self.maxlen, approximate=True)
            else:
                message_id = self.client.xadd(self.stream, fields)
        except redis.RedisError as exc:
            raise UnavailableError(f"Failed to publish payment event: {exc}") from exc

        logger.debug(
            "payment_event_published",
            stream=self.stream,
            message_id=message_id,
            event_type=message.event_type.value,
            payment_reference=message.reference,
        )
        return message_id

    def ensure_group(self) -> None:
        """Create the consumer group (and the stream) if they do not exist yet."""
        try:
            self.client.xgroup_create(self.stream, self.group, id="0", mkstream=True)
            logger.info("event_consumer_group_created", stream=self.stream, group=self.group)
        except redis.ResponseError as exc:
            if "BUSYGROUP" not in str(exc):
                raise

    def receive(self, max_messages: int = 10, wait_seconds: int = 20) -> List[ReceivedMessage]:
        """Fetch up to ``max_messages`` entries, blocking up to ``wait_seconds`` for new ones.

        Stale pending entries from crashed or failing consumers are reclaimed
        first, so a message that failed processing is delivered again once its
        visibility timeout has passed.
        """
        messages = self._reclaim_stale(max_messages)
        if len(messages) >= max_messages:
            return messages

        response = self.client.xreadgroup(
            self.group,
            self.consumer_name,
            {self.stream: ">"},
            count=max_messages - len(messages),
            block=wait_seconds * 1000 if wait_seconds > 0 else None,
        )
        for _stream, entries in response or []:
            messages.extend(self._to_message(entry_id, fields) for entry_id, fields in entries)
        return messages

    def delete(self, message_id: str) -> None:
        pipe = self.client.pipeline()
        pipe.xack(self.stream, self.group, message_id)
        pipe.xdel(self.stream, message_id)
        pipe.execute()

    def _reclaim_stale(self, count: int) -> List[ReceivedMessage]:
        if not self.visibility_timeout_seconds:
            return []
        response = self.client.xautoclaim(
            self.stream,
            self.group,
            self.consumer_name,
            min_idle_time=self.visibility_timeout_seconds * 1000,
            start_id=self._claim_cursor,
            count=count,
        )
        self._claim_cursor = response[0]
        # Entries trimmed from the stream come back with no fields
        return [self._to_message(entry_id, fields) for entry_id, fields in response[1] if fields]

    @staticmethod
    def _to_message(entry_id: str, fields: Dict[str, str]) -> ReceivedMessage:
        body = fields.get("body", "")
        attributes = {k: v for k, v in fields.items() if k != "body"}
        return ReceivedMessage(message_id=entry_id, body=body, attributes=attributes)
