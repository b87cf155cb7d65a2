"""
Booking Service
===============

Business logic for the booking lifecycle. All operations use async
SQLAlchemy sessions and enforce business rules including:

  - Provider eligibility at submission (exists, not suspended, offers the
    category)
  - Only the booking's own client/provider (or an admin) may act on it
  - State machine enforcement via bookingStateManager
  - Compare-and-swap status writes: the UPDATE only matches the status the
    caller validated against, so two racing transitions cannot both land
  - Job materialization in the same transaction as acceptance
  - Rating applied at most once per job through ratingAggregator
  - Notifications queued on the session after every state change and
    delivered once the transaction commits (failures are only logged)

Key functions:
  - create_booking        -- submit a pending booking
  - transition_booking    -- fire accept/reject/start/complete/cancel
  - rate_booking          -- attach the client's rating to a completed job
  - update_payment_status -- record the payment collaborator's outcome
  - get_booking / list_bookings
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fundi.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotAuthorizedError,
    NotFoundError,
)
from fundi.core.security import Actor, ActorRole
from fundi.events.bookingEvents import (
    emit_booking_cancelled,
    emit_booking_created,
    emit_booking_status_changed,
    emit_job_completed,
    emit_job_rated,
    emit_payment_updated,
)
from fundi.integrations.notifications import NotificationDispatcher, queue_notification
from fundi.models.booking import Booking, BookingStatus, PaymentMethod, PaymentStatus
from fundi.models.client import Client
from fundi.models.job import Job
from fundi.models.provider import ServiceCategory
from fundi.services import jobMaterializer, matchingEngine, ratingAggregator
from fundi.services.bookingStateManager import (
    EVENT_TARGETS,
    BookingEvent,
    can_trigger,
    validate_transition,
)
from fundi.services.geoService import Point
from fundi.services.pagination import PaginatedResult

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class CompletionDetails:
    """Execution data supplied by the provider when completing."""

    notes: Optional[str] = None
    distance_travelled_m: Optional[float] = None
    rating_score: Optional[float] = None
    rating_review: Optional[str] = None


@dataclass
class TransitionOutcome:
    booking: Booking
    job: Optional[Job] = None
    rating: Optional[ratingAggregator.RecordedRating] = None


def _as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def get_booking(
    db: AsyncSession,
    booking_id: uuid.UUID,
) -> Booking | None:
    """Fetch a single booking, bypassing any stale copy in the session."""
    return await db.get(Booking, booking_id, populate_existing=True)


async def _load_booking(db: AsyncSession, booking_id: uuid.UUID) -> Booking:
    booking = await get_booking(db, booking_id)
    if booking is None:
        raise NotFoundError("Booking", booking_id)
    return booking


def ensure_party(booking: Booking, actor: Actor) -> None:
    """Raise ``NotAuthorizedError`` unless the actor is on this booking."""
    if actor.is_admin:
        return
    if actor.role == ActorRole.CLIENT and actor.id == booking.client_id:
        return
    if actor.role == ActorRole.PROVIDER and actor.id == booking.provider_id:
        return
    raise NotAuthorizedError(f"Not a party to booking '{booking.id}'.")


async def list_bookings(
    db: AsyncSession,
    actor: Actor,
    *,
    status_filter: BookingStatus | None = None,
    page: int = 1,
    page_size: int = 20,
) -> PaginatedResult:
    """Return a paginated list of the actor's bookings, newest first.

    Admins see every booking.
    """
    filters = []
    if actor.role == ActorRole.CLIENT:
        filters.append(Booking.client_id == actor.id)
    elif actor.role == ActorRole.PROVIDER:
        filters.append(Booking.provider_id == actor.id)
    if status_filter is not None:
        filters.append(Booking.status == status_filter)

    count_stmt = select(func.count(Booking.id)).where(*filters)
    total_items: int = (await db.execute(count_stmt)).scalar_one()

    data_stmt = (
        select(Booking)
        .where(*filters)
        .order_by(Booking.created_at.desc(), Booking.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    bookings = (await db.execute(data_stmt)).scalars().all()

    return PaginatedResult(
        items=bookings,
        total_items=total_items,
        page=page,
        page_size=page_size,
    )


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------

async def create_booking(
    db: AsyncSession,
    actor: Actor,
    *,
    provider_id: uuid.UUID,
    category: ServiceCategory,
    scheduled_at: datetime,
    destination: Point,
    destination_address: Optional[str] = None,
    notes: Optional[str] = None,
    amount_cents: Optional[int] = None,
    payment_method: Optional[PaymentMethod] = None,
    client_id: Optional[uuid.UUID] = None,
    notifier: Optional[NotificationDispatcher] = None,
) -> Booking:
    """Submit a new booking in ``pending`` status.

    Clients always book for themselves; an admin must name ``client_id``.

    Raises:
        NotAuthorizedError: If a provider tries to book, or an admin omits
            the client.
        NotFoundError: If the client or provider does not exist.
        ProviderIneligibleError: If the provider is suspended or does not
            offer the category.
    """
    if actor.role == ActorRole.CLIENT:
        if client_id is not None and client_id != actor.id:
            raise NotAuthorizedError("Clients can only book for themselves.")
        client_id = actor.id
    elif actor.role == ActorRole.ADMIN:
        if client_id is None:
            raise NotAuthorizedError("Admin bookings must specify a client.")
    else:
        raise NotAuthorizedError("Only clients can submit bookings.")

    client = await db.get(Client, client_id)
    if client is None:
        raise NotFoundError("Client", client_id)

    await matchingEngine.check_provider_eligible(db, provider_id, category)

    booking = Booking(
        provider_id=provider_id,
        client_id=client_id,
        category=category,
        scheduled_at=scheduled_at,
        destination_longitude=destination.longitude,
        destination_latitude=destination.latitude,
        destination_address=destination_address,
        notes=notes,
        amount_cents=amount_cents,
        payment_method=payment_method,
        status=BookingStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
    )
    db.add(booking)
    await db.flush()

    event = emit_booking_created(
        booking_id=booking.id,
        client_id=client_id,
        provider_id=provider_id,
        category=category.value,
        scheduled_at=scheduled_at,
    )
    queue_notification(db, notifier, provider_id, "booking.created", event)

    logger.info(
        "Booking created: %s (client=%s, provider=%s, category=%s)",
        booking.id,
        client_id,
        provider_id,
        category.value,
    )
    return booking


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

async def compare_and_swap_status(
    db: AsyncSession,
    booking_id: uuid.UUID,
    expected: BookingStatus,
    target: BookingStatus,
    **changes,
) -> None:
    """Write ``target`` only if the stored status is still ``expected``.

    Raises:
        ConflictError: If another writer changed the status first.
    """
    stmt = (
        update(Booking)
        .where(Booking.id == booking_id, Booking.status == expected)
        .values(status=target, **changes)
        .returning(Booking.id)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.scalar_one_or_none() is None:
        logger.warning(
            "Booking %s changed concurrently; %s -> %s not applied",
            booking_id,
            expected.value,
            target.value,
        )
        raise ConflictError(
            f"Booking '{booking_id}' was modified concurrently; "
            f"it is no longer '{expected.value}'."
        )


def _recipients(booking: Booking, actor: Actor) -> list[uuid.UUID]:
    """Counter-parties of the actor on this booking."""
    if actor.role == ActorRole.CLIENT:
        return [booking.provider_id]
    if actor.role == ActorRole.PROVIDER:
        return [booking.client_id]
    return [booking.client_id, booking.provider_id]


async def transition_booking(
    db: AsyncSession,
    booking_id: uuid.UUID,
    event: BookingEvent,
    actor: Actor,
    *,
    reason: Optional[str] = None,
    completion: Optional[CompletionDetails] = None,
    notifier: Optional[NotificationDispatcher] = None,
) -> TransitionOutcome:
    """Fire a lifecycle event on a booking.

    Validation happens before any write. The status write is a
    compare-and-swap against the status that was validated.

    Raises:
        NotFoundError: If the booking does not exist.
        NotAuthorizedError: If the actor may not fire this event here.
        InvalidTransitionError: If the event is illegal from the current
            status (including any terminal status).
        ConflictError: If a concurrent transition won the race.
        InvalidRatingError: If a completion rating is out of range.
    """
    booking = await _load_booking(db, booking_id)
    ensure_party(booking, actor)
    if not can_trigger(event, actor.role):
        raise NotAuthorizedError(
            f"A {actor.role.value} cannot {event.value} a booking."
        )

    old_status = booking.status
    result = validate_transition(old_status, event, actor.role)
    if not result.allowed:
        raise InvalidTransitionError(result.reason or "Transition not allowed.")

    if event == BookingEvent.COMPLETE and completion and completion.rating_score is not None:
        ratingAggregator.validate_score(completion.rating_score)

    target = EVENT_TARGETS[event]
    now = datetime.now(timezone.utc)

    changes: dict = {}
    if event in (BookingEvent.ACCEPT, BookingEvent.REJECT):
        changes["responded_at"] = now
    elif event == BookingEvent.CANCEL:
        changes["cancelled_at"] = now
        changes["cancellation_reason"] = reason
        changes["cancelled_by_role"] = actor.role.value

    await compare_and_swap_status(db, booking_id, old_status, target, **changes)
    await db.refresh(booking)

    outcome = TransitionOutcome(booking=booking)

    if event == BookingEvent.ACCEPT:
        outcome.job = await jobMaterializer.create_from_booking(db, booking_id, notifier)
    elif event == BookingEvent.START:
        outcome.job = await _start_job(db, booking, now)
    elif event == BookingEvent.COMPLETE:
        outcome.job, outcome.rating = await _complete_job(
            db, booking, now, completion or CompletionDetails(), notifier
        )
    else:
        outcome.job = await jobMaterializer.get_job_for_booking(db, booking_id)

    status_event = emit_booking_status_changed(
        booking_id=booking.id,
        old_status=old_status.value,
        new_status=target.value,
        actor_id=actor.id,
    )
    if event == BookingEvent.CANCEL:
        cancel_event = emit_booking_cancelled(
            booking_id=booking.id,
            cancelled_by=actor.id,
            role=actor.role.value,
            reason=reason,
        )
        status_event["data"]["cancellation"] = cancel_event["data"]

    for recipient in _recipients(booking, actor):
        queue_notification(db, notifier, recipient, "booking.status_changed", status_event)

    logger.info(
        "Booking %s transitioned: %s -> %s (actor=%s, role=%s)",
        booking.id,
        old_status.value,
        target.value,
        actor.id,
        actor.role.value,
    )
    return outcome


async def _require_job(db: AsyncSession, booking: Booking) -> Job:
    job = await jobMaterializer.get_job_for_booking(db, booking.id)
    if job is None:
        # Accept always materializes a job
        raise NotFoundError("Job for booking", booking.id)
    return job


async def _start_job(db: AsyncSession, booking: Booking, now: datetime) -> Job:
    job = await _require_job(db, booking)
    job.started_at = now
    await db.flush()
    return job


async def _complete_job(
    db: AsyncSession,
    booking: Booking,
    now: datetime,
    completion: CompletionDetails,
    notifier: Optional[NotificationDispatcher],
) -> tuple[Job, Optional[ratingAggregator.RecordedRating]]:
    job = await _require_job(db, booking)

    job.completed_at = now
    job.completion_notes = completion.notes
    job.distance_travelled_m = completion.distance_travelled_m
    if job.started_at is not None:
        elapsed = now - _as_utc(job.started_at)
        job.duration_minutes = max(0, int(elapsed.total_seconds() // 60))
    await db.flush()

    completed_event = emit_job_completed(job.id, job.provider_id, job.duration_minutes)
    queue_notification(db, notifier, booking.client_id, "job.completed", completed_event)

    rating = None
    if completion.rating_score is not None:
        rating = await _record_rating(
            db, job, completion.rating_score, completion.rating_review, notifier
        )
    return job, rating


async def _record_rating(
    db: AsyncSession,
    job: Job,
    score: float,
    review: Optional[str],
    notifier: Optional[NotificationDispatcher],
) -> ratingAggregator.RecordedRating:
    recorded = await ratingAggregator.record_job_rating(db, job.id, score, review)
    await db.refresh(job)

    event = emit_job_rated(
        job_id=job.id,
        provider_id=recorded.provider_id,
        score=recorded.score,
        new_average=recorded.stats.average,
        rating_count=recorded.stats.count,
    )
    queue_notification(db, notifier, recorded.provider_id, "job.rated", event)
    return recorded


# ---------------------------------------------------------------------------
# Rating and payment
# ---------------------------------------------------------------------------

async def rate_booking(
    db: AsyncSession,
    booking_id: uuid.UUID,
    actor: Actor,
    score: float,
    review: Optional[str] = None,
    *,
    notifier: Optional[NotificationDispatcher] = None,
) -> tuple[Job, ratingAggregator.RecordedRating]:
    """Attach the client's rating to the job of a completed booking.

    Raises:
        NotFoundError: If the booking (or its job) does not exist.
        NotAuthorizedError: If the actor is not the booking's client or an
            admin.
        InvalidTransitionError: If the booking is not completed.
        InvalidRatingError: If the score is out of range.
        AlreadyRatedError: If the job already has a rating.
    """
    booking = await _load_booking(db, booking_id)
    if not actor.is_admin and not (
        actor.role == ActorRole.CLIENT and actor.id == booking.client_id
    ):
        raise NotAuthorizedError("Only the booking's client can rate it.")

    ratingAggregator.validate_score(score)

    if booking.status != BookingStatus.COMPLETED:
        raise InvalidTransitionError(
            f"Cannot rate booking '{booking_id}' in '{booking.status.value}' status."
        )

    job = await _require_job(db, booking)
    recorded = await _record_rating(db, job, score, review, notifier)
    return job, recorded


async def update_payment_status(
    db: AsyncSession,
    booking_id: uuid.UUID,
    payment_status: PaymentStatus,
    *,
    payment_method: Optional[PaymentMethod] = None,
    notifier: Optional[NotificationDispatcher] = None,
) -> Booking:
    """Record the payment collaborator's outcome on a booking."""
    booking = await _load_booking(db, booking_id)

    booking.payment_status = payment_status
    if payment_method is not None:
        booking.payment_method = payment_method
    await db.flush()

    event = emit_payment_updated(
        booking_id=booking.id,
        payment_status=payment_status.value,
        payment_method=booking.payment_method.value if booking.payment_method else None,
    )
    queue_notification(db, notifier, booking.client_id, "booking.payment_updated", event)
    return booking
