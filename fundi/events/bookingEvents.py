"""
Booking and Job Events
======================

Event payloads for booking and job lifecycle changes. Each ``emit_*``
function builds a standardised payload, logs it, and returns it so the
caller can hand it to the notification dispatcher for the right
recipient.

Events emitted:
  - booking.created
  - booking.status_changed
  - booking.cancelled
  - booking.payment_updated
  - job.created
  - job.completed
  - job.rated
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)


def _build_event(
    event_type: str,
    entity_id: uuid.UUID,
    *,
    data: dict[str, Any] | None = None,
    actor_id: uuid.UUID | None = None,
) -> dict[str, Any]:
    """Construct a standardised event payload."""
    return {
        "event_type": event_type,
        "entity_id": str(entity_id),
        "actor_id": str(actor_id) if actor_id else None,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "data": data or {},
    }


def emit_booking_created(
    booking_id: uuid.UUID,
    client_id: uuid.UUID,
    provider_id: uuid.UUID,
    category: str,
    scheduled_at: datetime,
) -> dict[str, Any]:
    """Emit event when a client submits a booking."""
    event = _build_event(
        "booking.created",
        booking_id,
        actor_id=client_id,
        data={
            "provider_id": str(provider_id),
            "category": category,
            "scheduled_at": scheduled_at.isoformat(),
        },
    )
    logger.info("Event emitted: %s for booking %s", event["event_type"], booking_id)
    return event


def emit_booking_status_changed(
    booking_id: uuid.UUID,
    old_status: str,
    new_status: str,
    actor_id: uuid.UUID | None = None,
) -> dict[str, Any]:
    """Emit event when a booking transitions between states."""
    event = _build_event(
        "booking.status_changed",
        booking_id,
        actor_id=actor_id,
        data={
            "old_status": old_status,
            "new_status": new_status,
        },
    )
    logger.info(
        "Event emitted: %s for booking %s (%s -> %s)",
        event["event_type"],
        booking_id,
        old_status,
        new_status,
    )
    return event


def emit_booking_cancelled(
    booking_id: uuid.UUID,
    cancelled_by: uuid.UUID,
    role: str,
    reason: str | None = None,
) -> dict[str, Any]:
    """Emit event when a booking is cancelled."""
    event = _build_event(
        "booking.cancelled",
        booking_id,
        actor_id=cancelled_by,
        data={"reason": reason, "cancelled_by_role": role},
    )
    logger.info("Event emitted: %s for booking %s", event["event_type"], booking_id)
    return event


def emit_payment_updated(
    booking_id: uuid.UUID,
    payment_status: str,
    payment_method: str | None = None,
) -> dict[str, Any]:
    event = _build_event(
        "booking.payment_updated",
        booking_id,
        data={"payment_status": payment_status, "payment_method": payment_method},
    )
    logger.info(
        "Event emitted: %s for booking %s (%s)",
        event["event_type"],
        booking_id,
        payment_status,
    )
    return event


def emit_job_created(
    job_id: uuid.UUID,
    booking_id: uuid.UUID,
    provider_id: uuid.UUID,
) -> dict[str, Any]:
    """Emit event when a job is materialized from an accepted booking."""
    event = _build_event(
        "job.created",
        job_id,
        actor_id=provider_id,
        data={"booking_id": str(booking_id)},
    )
    logger.info("Event emitted: %s for job %s", event["event_type"], job_id)
    return event


def emit_job_completed(
    job_id: uuid.UUID,
    provider_id: uuid.UUID,
    duration_minutes: int | None = None,
) -> dict[str, Any]:
    """Emit event when a job reaches the completed state."""
    event = _build_event(
        "job.completed",
        job_id,
        actor_id=provider_id,
        data={"duration_minutes": duration_minutes},
    )
    logger.info("Event emitted: %s for job %s", event["event_type"], job_id)
    return event


def emit_job_rated(
    job_id: uuid.UUID,
    provider_id: uuid.UUID,
    score: float,
    new_average: float,
    rating_count: int,
) -> dict[str, Any]:
    """Emit event when a client's rating is folded into provider stats."""
    event = _build_event(
        "job.rated",
        job_id,
        data={
            "provider_id": str(provider_id),
            "score": score,
            "new_average": new_average,
            "rating_count": rating_count,
        },
    )
    logger.info(
        "Event emitted: %s for job %s (score=%.1f, avg=%.2f)",
        event["event_type"],
        job_id,
        score,
        new_average,
    )
    return event
