"""
E2E: Concurrent writers.

Each contender runs in its own session (its own connection) and the
contenders are started together with ``asyncio.gather``. SQLite serialises
the writers; PostgreSQL lets them interleave. Either way the outcomes
asserted here must hold: no lost rating updates, one winner per booking
transition, one rating per job.
"""

from __future__ import annotations

import asyncio
import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from fundi.core.exceptions import (
    AlreadyRatedError,
    ConflictError,
    FundiError,
    InvalidTransitionError,
)
from fundi.models.booking import BookingStatus
from fundi.models.job import Job
from fundi.services import bookingService, ratingAggregator
from fundi.services.bookingStateManager import BookingEvent
from tests.e2e.conftest import (
    ADMIN,
    CLIENT,
    PROVIDER,
    PROVIDER_ID,
    booking_in_status,
)


pytestmark = pytest.mark.asyncio


async def _in_own_session(session_factory, operation):
    """Run ``operation(db)`` in a fresh session; commit on success."""
    async with session_factory() as db:
        try:
            result = await operation(db)
            await db.commit()
            return result
        except FundiError:
            await db.rollback()
            raise


async def _race(session_factory, *operations):
    return await asyncio.gather(
        *(_in_own_session(session_factory, op) for op in operations),
        return_exceptions=True,
    )


async def _rating_stats(session_factory, provider_id=PROVIDER_ID):
    async with session_factory() as db:
        return await ratingAggregator.get_rating_stats(db, provider_id)


# ---------------------------------------------------------------------------
# Rating statistic
# ---------------------------------------------------------------------------


class TestConcurrentRatings:

    async def test_two_ratings_both_land(self, seeded, session_factory):
        results = await _race(
            session_factory,
            lambda db: ratingAggregator.apply_rating(db, PROVIDER_ID, 4),
            lambda db: ratingAggregator.apply_rating(db, PROVIDER_ID, 5),
        )
        assert not [r for r in results if isinstance(r, BaseException)]

        stats = await _rating_stats(session_factory)
        assert stats.count == 2
        assert stats.average == pytest.approx(4.5)

    async def test_many_ratings_match_arithmetic_mean(self, seeded, session_factory):
        scores = [1, 2, 3, 4, 5, 5, 4, 3]
        await _race(
            session_factory,
            *(
                (lambda db, s=s: ratingAggregator.apply_rating(db, PROVIDER_ID, s))
                for s in scores
            ),
        )

        stats = await _rating_stats(session_factory)
        assert stats.count == len(scores)
        assert stats.average == pytest.approx(sum(scores) / len(scores))

    async def test_same_job_rated_once(self, client: AsyncClient, session_factory):
        booking = await booking_in_status(client, "completed")
        async with session_factory() as db:
            job_id = (
                await db.execute(
                    select(Job.id).where(Job.booking_id == uuid.UUID(booking["id"]))
                )
            ).scalar_one()

        results = await _race(
            session_factory,
            lambda db: ratingAggregator.record_job_rating(db, job_id, 4),
            lambda db: ratingAggregator.record_job_rating(db, job_id, 5),
        )

        failures = [r for r in results if isinstance(r, BaseException)]
        assert len(failures) == 1
        assert isinstance(failures[0], AlreadyRatedError)

        stats = await _rating_stats(session_factory)
        assert stats.count == 1
        assert stats.average in (4.0, 5.0)


# ---------------------------------------------------------------------------
# Booking transitions
# ---------------------------------------------------------------------------


class TestConcurrentTransitions:

    async def test_accept_and_reject_race_has_one_winner(
        self, client: AsyncClient, session_factory
    ):
        booking = await booking_in_status(client, "pending")
        booking_id = uuid.UUID(booking["id"])

        results = await _race(
            session_factory,
            lambda db: bookingService.transition_booking(
                db, booking_id, BookingEvent.ACCEPT, PROVIDER
            ),
            lambda db: bookingService.transition_booking(
                db, booking_id, BookingEvent.REJECT, PROVIDER
            ),
        )

        winners = [r for r in results if not isinstance(r, BaseException)]
        losers = [r for r in results if isinstance(r, BaseException)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], (InvalidTransitionError, ConflictError))

        async with session_factory() as db:
            stored = await bookingService.get_booking(db, booking_id)
            jobs = (
                await db.execute(
                    select(func.count(Job.id)).where(Job.booking_id == booking_id)
                )
            ).scalar_one()

        assert stored.status == winners[0].booking.status
        assert jobs == (1 if stored.status == BookingStatus.ACCEPTED else 0)

    async def test_double_accept_creates_one_job(
        self, client: AsyncClient, session_factory
    ):
        booking = await booking_in_status(client, "pending")
        booking_id = uuid.UUID(booking["id"])

        results = await _race(
            session_factory,
            lambda db: bookingService.transition_booking(
                db, booking_id, BookingEvent.ACCEPT, PROVIDER
            ),
            lambda db: bookingService.transition_booking(
                db, booking_id, BookingEvent.ACCEPT, ADMIN
            ),
        )
        assert sum(not isinstance(r, BaseException) for r in results) == 1

        async with session_factory() as db:
            jobs = (
                await db.execute(
                    select(func.count(Job.id)).where(Job.booking_id == booking_id)
                )
            ).scalar_one()
        assert jobs == 1

    async def test_cancel_and_accept_race(self, client: AsyncClient, session_factory):
        booking = await booking_in_status(client, "pending")
        booking_id = uuid.UUID(booking["id"])

        results = await _race(
            session_factory,
            lambda db: bookingService.transition_booking(
                db, booking_id, BookingEvent.CANCEL, CLIENT, reason="Changed my mind"
            ),
            lambda db: bookingService.transition_booking(
                db, booking_id, BookingEvent.ACCEPT, PROVIDER
            ),
        )
        winners = [r for r in results if not isinstance(r, BaseException)]
        assert len(winners) == 1

        async with session_factory() as db:
            stored = await bookingService.get_booking(db, booking_id)
        assert stored.status in (BookingStatus.CANCELLED, BookingStatus.ACCEPTED)


class TestCompareAndSwap:

    async def test_stale_expected_status_is_a_conflict(
        self, client: AsyncClient, session_factory
    ):
        booking = await booking_in_status(client, "pending")
        booking_id = uuid.UUID(booking["id"])

        # Session A reads, then lets go of the database
        async with session_factory() as db_a:
            stale = await bookingService.get_booking(db_a, booking_id)
            await db_a.commit()
            assert stale.status == BookingStatus.PENDING

            # Session B moves the booking on
            await _in_own_session(
                session_factory,
                lambda db_b: bookingService.transition_booking(
                    db_b, booking_id, BookingEvent.ACCEPT, PROVIDER
                ),
            )

            with pytest.raises(ConflictError):
                await bookingService.compare_and_swap_status(
                    db_a, booking_id, stale.status, BookingStatus.CANCELLED
                )
            await db_a.rollback()

        async with session_factory() as db:
            stored = await bookingService.get_booking(db, booking_id)
        assert stored.status == BookingStatus.ACCEPTED

    async def test_matching_expected_status_writes(
        self, client: AsyncClient, session_factory
    ):
        booking = await booking_in_status(client, "pending")
        booking_id = uuid.UUID(booking["id"])

        await _in_own_session(
            session_factory,
            lambda db: bookingService.compare_and_swap_status(
                db, booking_id, BookingStatus.PENDING, BookingStatus.REJECTED
            ),
        )

        async with session_factory() as db:
            stored = await bookingService.get_booking(db, booking_id)
        assert stored.status == BookingStatus.REJECTED
