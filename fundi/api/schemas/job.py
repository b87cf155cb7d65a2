"""
Pydantic v2 schemas for the Job API
===================================

Jobs are read-only over the API apart from materialization; their status
is the owning booking's status.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from fundi.models.booking import BookingStatus, PaymentStatus
from fundi.models.job import Job
from fundi.models.provider import ServiceCategory


# ---------------------------------------------------------------------------
# Shared pagination (re-usable across modules)
# ---------------------------------------------------------------------------

class PaginationMeta(BaseModel):
    """Pagination metadata included in every paginated response."""

    page: int = Field(ge=1, description="Current page number (1-indexed)")
    page_size: int = Field(ge=1, description="Number of items per page")
    total_items: int = Field(ge=0, description="Total number of matching items")
    total_pages: int = Field(ge=0, description="Total number of pages")


class PointOut(BaseModel):
    longitude: float
    latitude: float


# ---------------------------------------------------------------------------
# Job materialization
# ---------------------------------------------------------------------------

class JobCreateRequest(BaseModel):
    """Request body for materializing the job of an accepted booking."""

    booking_id: uuid.UUID = Field(description="UUID of the accepted booking")


# ---------------------------------------------------------------------------
# Job output
# ---------------------------------------------------------------------------

class JobRatingOut(BaseModel):
    score: float
    review: Optional[str] = None
    rated_at: Optional[datetime] = None


class JobOut(BaseModel):
    """Full job representation returned by detail and list endpoints."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    booking_id: uuid.UUID
    provider_id: uuid.UUID
    client_id: uuid.UUID
    category: ServiceCategory

    # Derived from the booking
    status: BookingStatus
    payment_status: PaymentStatus

    scheduled_at: datetime
    destination: PointOut
    destination_address: Optional[str] = None
    amount_cents: Optional[int] = None
    notes: Optional[str] = None

    # Execution
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completion_notes: Optional[str] = None
    distance_travelled_m: Optional[float] = None
    duration_minutes: Optional[int] = None

    rating: Optional[JobRatingOut] = None

    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_job(cls, job: Job) -> "JobOut":
        rating = None
        if job.rating_score is not None:
            rating = JobRatingOut(
                score=job.rating_score,
                review=job.rating_review,
                rated_at=job.rated_at,
            )
        return cls(
            id=job.id,
            booking_id=job.booking_id,
            provider_id=job.provider_id,
            client_id=job.client_id,
            category=job.category,
            status=job.status,
            payment_status=job.payment_status,
            scheduled_at=job.scheduled_at,
            destination=PointOut(
                longitude=job.destination_longitude,
                latitude=job.destination_latitude,
            ),
            destination_address=job.destination_address,
            amount_cents=job.amount_cents,
            notes=job.notes,
            started_at=job.started_at,
            completed_at=job.completed_at,
            completion_notes=job.completion_notes,
            distance_travelled_m=job.distance_travelled_m,
            duration_minutes=job.duration_minutes,
            rating=rating,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )


# ---------------------------------------------------------------------------
# List responses
# ---------------------------------------------------------------------------

class JobListResponse(BaseModel):
    """Paginated list of jobs."""

    data: list[JobOut]
    meta: PaginationMeta
