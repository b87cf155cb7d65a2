"""
Domain exceptions shared by the matching and booking services.

Services raise these; route handlers translate them into HTTP responses.
Every error is scoped to the request that raised it.
"""

from __future__ import annotations

import uuid


class FundiError(Exception):
    """Base class for all domain errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidQueryError(FundiError):
    """Raised when search parameters are malformed or out of range."""


class NotFoundError(FundiError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity: str, entity_id: uuid.UUID | str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} with id '{entity_id}' not found.")


class InvalidTransitionError(FundiError):
    """Raised when an event is not legal from the booking's current status."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class ProviderIneligibleError(InvalidTransitionError):
    """Raised when a booking targets a provider that cannot take it."""


class AlreadyMaterializedError(FundiError):
    """Raised when a job already exists for a booking."""

    def __init__(self, booking_id: uuid.UUID, job_id: uuid.UUID | None = None) -> None:
        self.booking_id = booking_id
        self.job_id = job_id
        super().__init__(f"Booking '{booking_id}' already has a job.")


class InvalidRatingError(FundiError):
    """Raised when a rating score is outside the accepted scale."""


class ConflictError(FundiError):
    """Raised when a concurrent writer changed the row first."""


class AlreadyRatedError(ConflictError):
    """Raised when a job's rating has already been recorded."""

    def __init__(self, job_id: uuid.UUID) -> None:
        self.job_id = job_id
        super().__init__(f"Job '{job_id}' has already been rated.")


class NotAuthorizedError(FundiError):
    """Raised when the actor is not a party to the booking."""
