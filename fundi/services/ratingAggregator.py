"""
Rating Aggregator
=================

Sole writer of provider rating statistics.

``apply_rating`` folds one score into a provider's running statistic with a
single UPDATE whose SET expressions read the row's prior values::

    rating_total   = rating_total + :score
    rating_count   = rating_count + 1
    rating_average = (rating_total + :score) / (rating_count + 1)

The database serialises concurrent updates to the same row, so two ratings
applied at the same time both land and the resulting average does not
depend on their order.

``record_job_rating`` is the once-per-job fence: it claims the job's empty
rating slot with a conditional UPDATE and only the claimant goes on to call
``apply_rating``. Retried completions and duplicate submissions fail with
``AlreadyRatedError`` instead of counting twice.
"""

from __future__ import annotations

import logging
import math
import numbers
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fundi.core.config import settings
from fundi.core.exceptions import AlreadyRatedError, InvalidRatingError, NotFoundError
from fundi.models.job import Job
from fundi.models.provider import Provider
from fundi.services.pagination import PaginatedResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RatingStats:
    provider_id: uuid.UUID
    average: float
    count: int


@dataclass(frozen=True)
class RecordedRating:
    job_id: uuid.UUID
    provider_id: uuid.UUID
    score: float
    stats: RatingStats


def validate_score(score: Any) -> float:
    """Return ``score`` as a float.

    Raises:
        InvalidRatingError: If the score is not a finite number within the
            configured scale.
    """
    if isinstance(score, bool) or not isinstance(score, numbers.Real):
        raise InvalidRatingError("Rating score must be a number.")
    value = float(score)
    if not math.isfinite(value):
        raise InvalidRatingError("Rating score must be finite.")
    if not settings.rating_min <= value <= settings.rating_max:
        raise InvalidRatingError(
            f"Rating score must be between {settings.rating_min:g} and "
            f"{settings.rating_max:g}, got {value:g}."
        )
    return value


async def apply_rating(
    db: AsyncSession,
    provider_id: uuid.UUID,
    score: Any,
) -> RatingStats:
    """Fold ``score`` into the provider's rating statistic.

    Raises:
        InvalidRatingError: If the score is out of range.
        NotFoundError: If the provider does not exist.
    """
    value = validate_score(score)

    stmt = (
        update(Provider)
        .where(Provider.id == provider_id)
        .values(
            rating_total=Provider.rating_total + value,
            rating_count=Provider.rating_count + 1,
            rating_average=(Provider.rating_total + value) / (Provider.rating_count + 1),
        )
        .returning(Provider.rating_average, Provider.rating_count)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    row = result.one_or_none()
    if row is None:
        raise NotFoundError("Provider", provider_id)

    stats = RatingStats(
        provider_id=provider_id,
        average=float(row.rating_average),
        count=int(row.rating_count),
    )
    logger.info(
        "Rating %.1f applied to provider %s: average=%.3f count=%d",
        value,
        provider_id,
        stats.average,
        stats.count,
    )
    return stats


async def record_job_rating(
    db: AsyncSession,
    job_id: uuid.UUID,
    score: Any,
    review: Optional[str] = None,
) -> RecordedRating:
    """Attach a rating to a job and, if it is the first, apply it.

    Raises:
        InvalidRatingError: If the score is out of range.
        NotFoundError: If the job does not exist.
        AlreadyRatedError: If the job already carries a rating.
    """
    value = validate_score(score)

    claim = (
        update(Job)
        .where(Job.id == job_id, Job.rating_score.is_(None))
        .values(
            rating_score=value,
            rating_review=review,
            rated_at=datetime.now(timezone.utc),
        )
        .returning(Job.provider_id)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(claim)
    provider_id = result.scalar_one_or_none()

    if provider_id is None:
        exists = await db.execute(select(Job.id).where(Job.id == job_id))
        if exists.scalar_one_or_none() is None:
            raise NotFoundError("Job", job_id)
        raise AlreadyRatedError(job_id)

    stats = await apply_rating(db, provider_id, value)
    return RecordedRating(job_id=job_id, provider_id=provider_id, score=value, stats=stats)


async def get_rating_stats(db: AsyncSession, provider_id: uuid.UUID) -> RatingStats:
    result = await db.execute(
        select(Provider.rating_average, Provider.rating_count).where(
            Provider.id == provider_id
        )
    )
    row = result.one_or_none()
    if row is None:
        raise NotFoundError("Provider", provider_id)
    return RatingStats(provider_id=provider_id, average=row.rating_average, count=row.rating_count)


async def list_provider_ratings(
    db: AsyncSession,
    provider_id: uuid.UUID,
    *,
    page: int = 1,
    page_size: int = 20,
) -> PaginatedResult:
    """Ratings history for a provider, newest first.

    Reads the jobs' rating sub-records; never touches the statistic.
    """
    filters = [Job.provider_id == provider_id, Job.rating_score.is_not(None)]

    count_result = await db.execute(select(func.count(Job.id)).where(*filters))
    total = count_result.scalar_one()

    stmt = (
        select(Job)
        .where(*filters)
        .order_by(Job.rated_at.desc(), Job.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(stmt)

    return PaginatedResult(
        items=result.scalars().unique().all(),
        total_items=total,
        page=page,
        page_size=page_size,
    )
