"""
Notification delivery integration
=================================

Public re-exports for the notification dispatchers.
"""

from .dispatcher import (
    LoggingNotificationDispatcher,
    Notification,
    NotificationDispatcher,
    RecordingNotificationDispatcher,
    RedisNotificationDispatcher,
    send_safely,
)
from .outbox import dispatch_queued, discard_queued, pending_count, queue_notification

__all__ = [
    "LoggingNotificationDispatcher",
    "Notification",
    "NotificationDispatcher",
    "RecordingNotificationDispatcher",
    "RedisNotificationDispatcher",
    "send_safely",
    "dispatch_queued",
    "discard_queued",
    "pending_count",
    "queue_notification",
]
