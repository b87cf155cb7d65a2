"""
Booking API Routes
==================

REST endpoints for the booking lifecycle.

Routes:
  POST   /api/v1/bookings                        -- Submit a booking
  GET    /api/v1/bookings                        -- Caller's bookings (paginated)
  GET    /api/v1/bookings/{booking_id}           -- Booking detail
  POST   /api/v1/bookings/{booking_id}/accept    -- Provider accepts (creates the job)
  POST   /api/v1/bookings/{booking_id}/reject    -- Provider rejects
  POST   /api/v1/bookings/{booking_id}/start     -- Provider starts work
  POST   /api/v1/bookings/{booking_id}/complete  -- Provider completes (optional rating)
  POST   /api/v1/bookings/{booking_id}/cancel    -- Client or provider cancels
  POST   /api/v1/bookings/{booking_id}/rating    -- Client rates a completed booking
  PATCH  /api/v1/bookings/{booking_id}/payment   -- Record payment outcome (admin)
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from fundi.api.deps import AdminActor, CurrentActor, DBSession, Notifier
from fundi.api.errors import to_http_exception
from fundi.api.schemas.booking import (
    BookingCancelRequest,
    BookingCompleteRequest,
    BookingCreateRequest,
    BookingListResponse,
    BookingOut,
    BookingTransitionOut,
    PaymentUpdateRequest,
    ProviderRatingOut,
    RatingRequest,
    RatingResultOut,
)
from fundi.api.schemas.job import JobOut, PaginationMeta
from fundi.core.config import settings
from fundi.core.exceptions import FundiError
from fundi.core.security import Actor
from fundi.models.booking import BookingStatus
from fundi.services import bookingService
from fundi.services.bookingService import CompletionDetails, TransitionOutcome
from fundi.services.bookingStateManager import BookingEvent, get_valid_events
from fundi.services.geoService import Point

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def _transition_out(outcome: TransitionOutcome, actor: Actor) -> BookingTransitionOut:
    return BookingTransitionOut(
        booking=BookingOut.from_booking(outcome.booking),
        job=JobOut.from_job(outcome.job) if outcome.job else None,
        available_events=[
            e.value for e in get_valid_events(outcome.booking.status, actor.role)
        ],
    )


# ---------------------------------------------------------------------------
# POST /api/v1/bookings -- Submit
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=BookingOut,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a booking",
    description=(
        "Creates a booking in 'pending' status. The provider must exist, "
        "must not be suspended and must offer the requested category."
    ),
)
async def create_booking(
    db: DBSession,
    actor: CurrentActor,
    notifier: Notifier,
    body: BookingCreateRequest,
) -> BookingOut:
    try:
        destination = Point.parse(body.destination.longitude, body.destination.latitude)
        booking = await bookingService.create_booking(
            db,
            actor,
            provider_id=body.provider_id,
            category=body.category,
            scheduled_at=body.scheduled_at,
            destination=destination,
            destination_address=body.destination_address,
            notes=body.notes,
            amount_cents=body.amount_cents,
            payment_method=body.payment_method,
            client_id=body.client_id,
            notifier=notifier,
        )
    except FundiError as exc:
        raise to_http_exception(exc)

    return BookingOut.from_booking(booking)


# ---------------------------------------------------------------------------
# GET /api/v1/bookings -- List
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=BookingListResponse,
    summary="List the caller's bookings",
)
async def list_bookings(
    db: DBSession,
    actor: CurrentActor,
    status_filter: Optional[BookingStatus] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
) -> BookingListResponse:
    result = await bookingService.list_bookings(
        db, actor, status_filter=status_filter, page=page, page_size=page_size
    )
    return BookingListResponse(
        data=[BookingOut.from_booking(b) for b in result.items],
        meta=PaginationMeta(
            page=result.page,
            page_size=result.page_size,
            total_items=result.total_items,
            total_pages=result.total_pages,
        ),
    )


# ---------------------------------------------------------------------------
# GET /api/v1/bookings/{booking_id} -- Detail
# ---------------------------------------------------------------------------

@router.get(
    "/{booking_id}",
    response_model=BookingOut,
    summary="Get booking detail",
)
async def get_booking(
    db: DBSession,
    actor: CurrentActor,
    booking_id: uuid.UUID,
) -> BookingOut:
    booking = await bookingService.get_booking(db, booking_id)
    if booking is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Booking with id '{booking_id}' not found.",
        )
    try:
        bookingService.ensure_party(booking, actor)
    except FundiError as exc:
        raise to_http_exception(exc)
    return BookingOut.from_booking(booking)


# ---------------------------------------------------------------------------
# Lifecycle transitions
# ---------------------------------------------------------------------------

@router.post(
    "/{booking_id}/accept",
    response_model=BookingTransitionOut,
    summary="Accept a pending booking",
    description="Moves the booking to 'accepted' and creates its job in the same transaction.",
)
async def accept_booking(
    db: DBSession,
    actor: CurrentActor,
    notifier: Notifier,
    booking_id: uuid.UUID,
) -> BookingTransitionOut:
    try:
        outcome = await bookingService.transition_booking(
            db, booking_id, BookingEvent.ACCEPT, actor, notifier=notifier
        )
    except FundiError as exc:
        raise to_http_exception(exc)
    return _transition_out(outcome, actor)


@router.post(
    "/{booking_id}/reject",
    response_model=BookingTransitionOut,
    summary="Reject a pending booking",
)
async def reject_booking(
    db: DBSession,
    actor: CurrentActor,
    notifier: Notifier,
    booking_id: uuid.UUID,
) -> BookingTransitionOut:
    try:
        outcome = await bookingService.transition_booking(
            db, booking_id, BookingEvent.REJECT, actor, notifier=notifier
        )
    except FundiError as exc:
        raise to_http_exception(exc)
    return _transition_out(outcome, actor)


@router.post(
    "/{booking_id}/start",
    response_model=BookingTransitionOut,
    summary="Start work on an accepted booking",
)
async def start_booking(
    db: DBSession,
    actor: CurrentActor,
    notifier: Notifier,
    booking_id: uuid.UUID,
) -> BookingTransitionOut:
    try:
        outcome = await bookingService.transition_booking(
            db, booking_id, BookingEvent.START, actor, notifier=notifier
        )
    except FundiError as exc:
        raise to_http_exception(exc)
    return _transition_out(outcome, actor)


@router.post(
    "/{booking_id}/complete",
    response_model=BookingTransitionOut,
    summary="Complete an in-progress booking",
    description=(
        "Moves the booking to 'completed' and records execution data on the "
        "job. A rating supplied here is applied to the provider at most once."
    ),
)
async def complete_booking(
    db: DBSession,
    actor: CurrentActor,
    notifier: Notifier,
    booking_id: uuid.UUID,
    body: Optional[BookingCompleteRequest] = None,
) -> BookingTransitionOut:
    completion = CompletionDetails(**body.model_dump()) if body else None
    try:
        outcome = await bookingService.transition_booking(
            db,
            booking_id,
            BookingEvent.COMPLETE,
            actor,
            completion=completion,
            notifier=notifier,
        )
    except FundiError as exc:
        raise to_http_exception(exc)
    return _transition_out(outcome, actor)


@router.post(
    "/{booking_id}/cancel",
    response_model=BookingTransitionOut,
    summary="Cancel a booking",
)
async def cancel_booking(
    db: DBSession,
    actor: CurrentActor,
    notifier: Notifier,
    booking_id: uuid.UUID,
    body: Optional[BookingCancelRequest] = None,
) -> BookingTransitionOut:
    try:
        outcome = await bookingService.transition_booking(
            db,
            booking_id,
            BookingEvent.CANCEL,
            actor,
            reason=body.reason if body else None,
            notifier=notifier,
        )
    except FundiError as exc:
        raise to_http_exception(exc)
    return _transition_out(outcome, actor)


# ---------------------------------------------------------------------------
# POST /api/v1/bookings/{booking_id}/rating -- Rate
# ---------------------------------------------------------------------------

@router.post(
    "/{booking_id}/rating",
    response_model=RatingResultOut,
    status_code=status.HTTP_201_CREATED,
    summary="Rate a completed booking",
)
async def rate_booking(
    db: DBSession,
    actor: CurrentActor,
    notifier: Notifier,
    booking_id: uuid.UUID,
    body: RatingRequest,
) -> RatingResultOut:
    try:
        job, recorded = await bookingService.rate_booking(
            db, booking_id, actor, body.score, body.review, notifier=notifier
        )
    except FundiError as exc:
        raise to_http_exception(exc)

    return RatingResultOut(
        job_id=job.id,
        provider_id=recorded.provider_id,
        score=recorded.score,
        provider_rating=ProviderRatingOut(
            average=recorded.stats.average,
            count=recorded.stats.count,
        ),
    )


# ---------------------------------------------------------------------------
# PATCH /api/v1/bookings/{booking_id}/payment -- Payment outcome (admin)
# ---------------------------------------------------------------------------

@router.patch(
    "/{booking_id}/payment",
    response_model=BookingOut,
    summary="Record a payment outcome",
)
async def update_payment(
    db: DBSession,
    actor: AdminActor,
    notifier: Notifier,
    booking_id: uuid.UUID,
    body: PaymentUpdateRequest,
) -> BookingOut:
    try:
        booking = await bookingService.update_payment_status(
            db,
            booking_id,
            body.payment_status,
            payment_method=body.payment_method,
            notifier=notifier,
        )
    except FundiError as exc:
        raise to_http_exception(exc)
    return BookingOut.from_booking(booking)
