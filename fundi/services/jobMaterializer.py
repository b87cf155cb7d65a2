"""
Job Materializer
================

Creates the job for an accepted booking. Called by the booking lifecycle
inside the same transaction as the ``pending -> accepted`` write, so an
accepted booking always has exactly one job.

The booking drives status; the job only copies the booking's fields at
creation time and reads status through ``Job.booking``.

Idempotency is enforced twice: an up-front lookup by ``booking_id``, and
the unique constraint on ``jobs.booking_id`` for a concurrent insert that
slips past the lookup. The insert runs in a SAVEPOINT so a lost race
leaves the outer transaction usable.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fundi.core.exceptions import (
    AlreadyMaterializedError,
    InvalidTransitionError,
    NotAuthorizedError,
    NotFoundError,
)
from fundi.core.security import Actor, ActorRole
from fundi.events.bookingEvents import emit_job_created
from fundi.integrations.notifications import NotificationDispatcher, queue_notification
from fundi.models.booking import Booking, BookingStatus
from fundi.models.job import Job
from fundi.services.pagination import PaginatedResult

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def get_job(db: AsyncSession, job_id: uuid.UUID) -> Optional[Job]:
    result = await db.execute(
        select(Job).where(Job.id == job_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_job_for_booking(db: AsyncSession, booking_id: uuid.UUID) -> Optional[Job]:
    result = await db.execute(
        select(Job)
        .where(Job.booking_id == booking_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def ensure_job_visible(job: Job, actor: Actor) -> None:
    if actor.is_admin or actor.id in (job.client_id, job.provider_id):
        return
    raise NotAuthorizedError(f"Not a party to job '{job.id}'.")


async def list_jobs(
    db: AsyncSession,
    actor: Actor,
    *,
    status_filter: Optional[BookingStatus] = None,
    page: int = 1,
    page_size: int = 20,
) -> PaginatedResult:
    """Jobs where the actor is the client or provider, newest first.

    Admins see every job.
    """
    filters = []
    if actor.role == ActorRole.CLIENT:
        filters.append(Job.client_id == actor.id)
    elif actor.role == ActorRole.PROVIDER:
        filters.append(Job.provider_id == actor.id)
    if status_filter is not None:
        filters.append(Job.booking.has(Booking.status == status_filter))

    total = (await db.execute(select(func.count(Job.id)).where(*filters))).scalar_one()
    jobs = (
        await db.execute(
            select(Job)
            .where(*filters)
            .order_by(Job.created_at.desc(), Job.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    ).scalars().all()

    return PaginatedResult(items=jobs, total_items=total, page=page, page_size=page_size)


# ---------------------------------------------------------------------------
# Materialization
# ---------------------------------------------------------------------------

async def create_from_booking(
    db: AsyncSession,
    booking_id: uuid.UUID,
    notifier: Optional[NotificationDispatcher] = None,
) -> Job:
    """Materialize the job for an accepted booking.

    Raises:
        NotFoundError: If the booking does not exist.
        AlreadyMaterializedError: If the booking already has a job.
        InvalidTransitionError: If the booking is not ``accepted``.
    """
    booking = await db.get(Booking, booking_id, populate_existing=True)
    if booking is None:
        raise NotFoundError("Booking", booking_id)

    existing = await get_job_for_booking(db, booking_id)
    if existing is not None:
        raise AlreadyMaterializedError(booking_id, existing.id)

    if booking.status != BookingStatus.ACCEPTED:
        raise InvalidTransitionError(
            f"Cannot create a job for booking '{booking_id}' in "
            f"'{booking.status.value}' status; it must be accepted first."
        )

    job = Job(
        booking_id=booking.id,
        provider_id=booking.provider_id,
        client_id=booking.client_id,
        category=booking.category,
        scheduled_at=booking.scheduled_at,
        destination_longitude=booking.destination_longitude,
        destination_latitude=booking.destination_latitude,
        destination_address=booking.destination_address,
        amount_cents=booking.amount_cents,
        notes=booking.notes,
    )
    job.booking = booking

    try:
        async with db.begin_nested():
            db.add(job)
    except IntegrityError:
        logger.info("Concurrent job insert for booking %s lost the race", booking_id)
        raise AlreadyMaterializedError(booking_id)

    logger.info("Job %s created for booking %s", job.id, booking_id)

    event = emit_job_created(job.id, booking.id, booking.provider_id)
    queue_notification(db, notifier, booking.client_id, "job.created", event)

    return job
