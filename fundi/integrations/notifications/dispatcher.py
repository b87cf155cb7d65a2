"""
Notification Dispatcher
=======================

Outbound, send-and-forget channel to clients and providers. Lifecycle
services queue notifications on their session (see ``outbox``) and the
request scope calls ``notify(recipient_id, kind, payload)`` after commit;
delivery problems are logged here and never propagate to the caller, so a
failed notification can never roll back a transition.

Implementations:
  - ``RedisNotificationDispatcher``   -- publishes JSON to a per-recipient
    pub/sub channel (``{prefix}:{recipient_id}``). The push gateway
    subscribes to these channels and handles device delivery.
  - ``LoggingNotificationDispatcher`` -- logs only; used when notifications
    are disabled and in local development.
  - ``RecordingNotificationDispatcher`` -- keeps sent messages in memory.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    recipient_id: uuid.UUID
    kind: str
    payload: dict[str, Any]


class NotificationDispatcher(Protocol):
    async def notify(
        self,
        recipient_id: uuid.UUID,
        kind: str,
        payload: dict[str, Any],
    ) -> None: ...

    async def close(self) -> None: ...


class LoggingNotificationDispatcher:
    """Dispatcher that only writes notifications to the log."""

    async def notify(
        self,
        recipient_id: uuid.UUID,
        kind: str,
        payload: dict[str, Any],
    ) -> None:
        logger.info("Notification %s -> %s: %s", kind, recipient_id, payload)

    async def close(self) -> None:
        return None


@dataclass
class RecordingNotificationDispatcher:
    """Dispatcher that keeps every notification in ``sent``."""

    sent: list[Notification] = field(default_factory=list)

    async def notify(
        self,
        recipient_id: uuid.UUID,
        kind: str,
        payload: dict[str, Any],
    ) -> None:
        self.sent.append(Notification(recipient_id, kind, payload))

    def kinds_for(self, recipient_id: uuid.UUID) -> list[str]:
        return [n.kind for n in self.sent if n.recipient_id == recipient_id]

    async def close(self) -> None:
        return None


class RedisNotificationDispatcher:
    """Publish notifications to Redis pub/sub."""

    def __init__(self, redis: Redis, channel_prefix: str) -> None:
        self._redis = redis
        self._channel_prefix = channel_prefix

    @classmethod
    def from_url(cls, url: str, channel_prefix: str) -> "RedisNotificationDispatcher":
        return cls(Redis.from_url(url, decode_responses=True), channel_prefix)

    def channel_for(self, recipient_id: uuid.UUID) -> str:
        return f"{self._channel_prefix}:{recipient_id}"

    async def notify(
        self,
        recipient_id: uuid.UUID,
        kind: str,
        payload: dict[str, Any],
    ) -> None:
        message = json.dumps(
            {"kind": kind, "recipient_id": str(recipient_id), "payload": payload},
            default=str,
        )
        try:
            receivers = await self._redis.publish(self.channel_for(recipient_id), message)
        except (RedisError, OSError) as exc:
            logger.warning(
                "Failed to publish %s notification to %s: %s",
                kind,
                recipient_id,
                exc,
            )
            return
        logger.debug(
            "Published %s notification to %s (%d receivers)",
            kind,
            recipient_id,
            receivers,
        )

    async def close(self) -> None:
        await self._redis.aclose()


async def send_safely(
    dispatcher: NotificationDispatcher | None,
    recipient_id: uuid.UUID,
    kind: str,
    payload: dict[str, Any],
) -> None:
    """Deliver through ``dispatcher``, logging instead of raising on failure."""
    if dispatcher is None:
        return
    try:
        await dispatcher.notify(recipient_id, kind, payload)
    except Exception:
        logger.exception("Notification %s to %s failed", kind, recipient_id)
