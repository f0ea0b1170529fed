"""Event publishing for sync progress.

Progress of a full sync can be followed from outside the process (for example
by a dashboard) through Redis pub/sub. Producers publish JSON payloads on
namespaced channels derived from ``EventType``.

Key concepts
- ``EventType`` stable identifiers are versioned (``.v1`` suffix)
- ``EventPublisher`` composes channel names as ``{prefix}:{event_type}``
"""

import json
import time
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import redis
import structlog

logger = structlog.get_logger("events")


class EventType(Enum):
    """Event types published by searchsync."""
    SYNC_PROGRESS = "sync.progress.v1"


@dataclass
class BaseEvent:
    """Base event class.

    Child events set their ``event_type`` in ``__post_init__``.
    """
    timestamp: int
    event_type: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary."""
        return asdict(self)

    def to_json(self) -> str:
        """Convert event to JSON string."""
        return json.dumps(self.to_dict())


@dataclass
class SyncProgressEvent(BaseEvent):
    """Event emitted for every progress message of a sync run."""
    message: str
    status: str
    index_meta: Optional[Dict[str, Any]] = field(default=None)

    def __post_init__(self):
        self.event_type = EventType.SYNC_PROGRESS.value
        if not self.timestamp:
            self.timestamp = int(time.time() * 1000)


class EventPublisher:
    """Publishes events to Redis.

    Notes
    - Failed publishes are retried with backoff and re-raised after the last attempt.
    - Messages are serialized as JSON to keep consumers language-agnostic.
    """

    def __init__(
        self,
        redis_url: str,
        channel_prefix: str = "searchsync_events",
        client: Optional[redis.Redis] = None
    ):
        self.redis_client = client if client is not None else redis.from_url(redis_url)
        self.channel_prefix = channel_prefix

    def channel_for(self, event_type: str) -> str:
        """Return the pub/sub channel used for an event type."""
        return f"{self.channel_prefix}:{event_type}"

    def publish(self, event: BaseEvent, max_retries: int = 3, base_delay: float = 0.5) -> None:
        """Publish an event with retry logic.

        The channel is derived from the event's type to allow subscribers to
        filter efficiently without payload inspection.
        """
        for attempt in range(max_retries):
            try:
                channel = self.channel_for(event.event_type)
                self.redis_client.publish(channel, event.to_json())
                logger.debug(
                    "Event published",
                    event_type=event.event_type,
                    channel=channel
                )
                return
            except redis.RedisError as e:
                if attempt == max_retries - 1:
                    logger.error(
                        "Failed to publish event after all retries",
                        event_type=event.event_type,
                        error=str(e)
                    )
                    raise

                delay = base_delay * (2 ** attempt)
                logger.warning(
                    "Event publish failed, retrying",
                    event_type=event.event_type,
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    delay=delay,
                    error=str(e)
                )
                time.sleep(delay)

    def publish_sync_progress(
        self,
        message: str,
        status: str,
        index_meta: Optional[Dict[str, Any]] = None
    ) -> None:
        """Publish a sync progress event."""
        event = SyncProgressEvent(
            timestamp=int(time.time() * 1000),
            event_type=EventType.SYNC_PROGRESS.value,
            message=message,
            status=status,
            index_meta=index_meta
        )
        self.publish(event)


def create_event_publisher(redis_url: str) -> EventPublisher:
    """Create an event publisher."""
    return EventPublisher(redis_url)
