"""
Job API Routes
==============

Jobs are created by accepting a booking; these endpoints read them and
expose materialization for callers that need to retry it.

Routes:
  POST   /api/v1/jobs                          -- Materialize the job of an accepted booking (admin)
  GET    /api/v1/jobs                          -- Caller's jobs (paginated)
  GET    /api/v1/jobs/by-booking/{booking_id}  -- Job for a booking
  GET    /api/v1/jobs/{job_id}                 -- Job detail
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from fundi.api.deps import AdminActor, CurrentActor, DBSession, Notifier
from fundi.api.errors import to_http_exception
from fundi.api.schemas.job import (
    JobCreateRequest,
    JobListResponse,
    JobOut,
    PaginationMeta,
)
from fundi.core.config import settings
from fundi.core.exceptions import FundiError
from fundi.models.booking import BookingStatus
from fundi.services import jobMaterializer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"])


# ---------------------------------------------------------------------------
# POST /api/v1/jobs -- Materialize
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=JobOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create the job for an accepted booking",
    description=(
        "Idempotency guard for job materialization: returns 409 if the "
        "booking already has a job or is not in 'accepted' status."
    ),
)
async def create_job(
    db: DBSession,
    actor: AdminActor,
    notifier: Notifier,
    body: JobCreateRequest,
) -> JobOut:
    try:
        job = await jobMaterializer.create_from_booking(db, body.booking_id, notifier)
    except FundiError as exc:
        raise to_http_exception(exc)
    return JobOut.from_job(job)


# ---------------------------------------------------------------------------
# GET /api/v1/jobs -- List
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=JobListResponse,
    summary="List the caller's jobs",
)
async def list_jobs(
    db: DBSession,
    actor: CurrentActor,
    status_filter: Optional[BookingStatus] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=settings.default_page_size, ge=1, le=settings.max_page_size),
) -> JobListResponse:
    result = await jobMaterializer.list_jobs(
        db, actor, status_filter=status_filter, page=page, page_size=page_size
    )
    return JobListResponse(
        data=[JobOut.from_job(j) for j in result.items],
        meta=PaginationMeta(
            page=result.page,
            page_size=result.page_size,
            total_items=result.total_items,
            total_pages=result.total_pages,
        ),
    )


# ---------------------------------------------------------------------------
# GET /api/v1/jobs/by-booking/{booking_id}
# ---------------------------------------------------------------------------

@router.get(
    "/by-booking/{booking_id}",
    response_model=JobOut,
    summary="Get the job created for a booking",
)
async def get_job_for_booking(
    db: DBSession,
    actor: CurrentActor,
    booking_id: uuid.UUID,
) -> JobOut:
    job = await jobMaterializer.get_job_for_booking(db, booking_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No job exists for booking '{booking_id}'.",
        )
    try:
        jobMaterializer.ensure_job_visible(job, actor)
    except FundiError as exc:
        raise to_http_exception(exc)
    return JobOut.from_job(job)


# ---------------------------------------------------------------------------
# GET /api/v1/jobs/{job_id} -- Detail
# ---------------------------------------------------------------------------

@router.get(
    "/{job_id}",
    response_model=JobOut,
    summary="Get job detail",
)
async def get_job(
    db: DBSession,
    actor: CurrentActor,
    job_id: uuid.UUID,
) -> JobOut:
    job = await jobMaterializer.get_job(db, job_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job with id '{job_id}' not found.",
        )
    try:
        jobMaterializer.ensure_job_visible(job, actor)
    except FundiError as exc:
        raise to_http_exception(exc)
    return JobOut.from_job(job)
