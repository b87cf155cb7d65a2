"""
Pydantic v2 schemas for the Booking API
=======================================

Request bodies carry raw coordinates; routes turn them into validated
points so that out-of-range or non-finite values surface as
``InvalidQueryError`` (400) rather than generic validation errors.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from fundi.api.schemas.job import JobOut, PaginationMeta, PointOut
from fundi.models.booking import Booking, BookingStatus, PaymentMethod, PaymentStatus
from fundi.models.provider import ServiceCategory


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class PointIn(BaseModel):
    longitude: float
    latitude: float


class BookingCreateRequest(BaseModel):
    """Request body for submitting a booking."""

    provider_id: uuid.UUID
    category: ServiceCategory
    scheduled_at: datetime
    destination: PointIn
    destination_address: Optional[str] = Field(default=None, max_length=500)
    notes: Optional[str] = Field(default=None, max_length=2000)
    amount_cents: Optional[int] = Field(default=None, ge=0)
    payment_method: Optional[PaymentMethod] = None
    client_id: Optional[uuid.UUID] = Field(
        default=None,
        description="Required when an admin books on a client's behalf",
    )


class BookingCancelRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class BookingCompleteRequest(BaseModel):
    """Optional execution data sent with ``complete``."""

    notes: Optional[str] = Field(default=None, max_length=2000)
    distance_travelled_m: Optional[float] = Field(default=None, ge=0)
    rating_score: Optional[float] = None
    rating_review: Optional[str] = Field(default=None, max_length=2000)


class RatingRequest(BaseModel):
    score: float
    review: Optional[str] = Field(default=None, max_length=2000)


class PaymentUpdateRequest(BaseModel):
    payment_status: PaymentStatus
    payment_method: Optional[PaymentMethod] = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class BookingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    provider_id: uuid.UUID
    client_id: uuid.UUID
    category: ServiceCategory
    status: BookingStatus
    scheduled_at: datetime
    destination: PointOut
    destination_address: Optional[str] = None
    notes: Optional[str] = None
    amount_cents: Optional[int] = None
    payment_status: PaymentStatus
    payment_method: Optional[PaymentMethod] = None
    responded_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    cancelled_by_role: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingOut":
        return cls(
            id=booking.id,
            provider_id=booking.provider_id,
            client_id=booking.client_id,
            category=booking.category,
            status=booking.status,
            scheduled_at=booking.scheduled_at,
            destination=PointOut(
                longitude=booking.destination_longitude,
                latitude=booking.destination_latitude,
            ),
            destination_address=booking.destination_address,
            notes=booking.notes,
            amount_cents=booking.amount_cents,
            payment_status=booking.payment_status,
            payment_method=booking.payment_method,
            responded_at=booking.responded_at,
            cancelled_at=booking.cancelled_at,
            cancellation_reason=booking.cancellation_reason,
            cancelled_by_role=booking.cancelled_by_role,
            created_at=booking.created_at,
            updated_at=booking.updated_at,
        )


class BookingTransitionOut(BaseModel):
    booking: BookingOut
    job: Optional[JobOut] = None
    available_events: list[str] = Field(default_factory=list)


class ProviderRatingOut(BaseModel):
    average: float
    count: int


class RatingResultOut(BaseModel):
    job_id: uuid.UUID
    provider_id: uuid.UUID
    score: float
    provider_rating: ProviderRatingOut


class BookingListResponse(BaseModel):
    data: list[BookingOut]
    meta: PaginationMeta
