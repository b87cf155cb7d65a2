"""
Per-session notification outbox.

Services queue notifications on the ``AsyncSession`` that carries their
writes; the request scope (``fundi.api.deps.get_db``) delivers them only
after the transaction commits and drops them on rollback. A notification
therefore never describes a change that was not persisted, and no row lock
is held while publishing.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from .dispatcher import NotificationDispatcher, send_safely

logger = logging.getLogger(__name__)

_OUTBOX_KEY = "fundi.pending_notifications"


def queue_notification(
    db: AsyncSession,
    dispatcher: NotificationDispatcher | None,
    recipient_id: uuid.UUID,
    kind: str,
    payload: dict[str, Any],
) -> None:
    """Hold a notification until ``db`` commits."""
    if dispatcher is None:
        return
    db.info.setdefault(_OUTBOX_KEY, []).append(
        (dispatcher, recipient_id, kind, payload)
    )


def pending_count(db: AsyncSession) -> int:
    return len(db.info.get(_OUTBOX_KEY, ()))


async def dispatch_queued(db: AsyncSession) -> None:
    """Deliver everything queued on ``db``, in order. Call after commit."""
    pending = db.info.pop(_OUTBOX_KEY, [])
    for dispatcher, recipient_id, kind, payload in pending:
        await send_safely(dispatcher, recipient_id, kind, payload)


def discard_queued(db: AsyncSession) -> None:
    dropped = db.info.pop(_OUTBOX_KEY, [])
    if dropped:
        logger.info("Dropped %d notification(s) from a rolled-back transaction", len(dropped))
