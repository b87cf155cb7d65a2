"""
Translation of domain exceptions into HTTP errors.

Route handlers catch ``FundiError`` and re-raise ``to_http_exception(exc)``.
"""

from __future__ import annotations

from fastapi import HTTPException, status

from fundi.core.exceptions import (
    AlreadyMaterializedError,
    ConflictError,
    FundiError,
    InvalidQueryError,
    InvalidRatingError,
    InvalidTransitionError,
    NotAuthorizedError,
    NotFoundError,
)

# Checked in order; subclasses must precede their bases.
_STATUS_CODES: tuple[tuple[type[FundiError], int], ...] = (
    (InvalidQueryError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (NotAuthorizedError, status.HTTP_403_FORBIDDEN),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (AlreadyMaterializedError, status.HTTP_409_CONFLICT),
    (ConflictError, status.HTTP_409_CONFLICT),
    (InvalidRatingError, status.HTTP_422_UNPROCESSABLE_ENTITY),
)


def to_http_exception(exc: FundiError) -> HTTPException:
    for exc_type, status_code in _STATUS_CODES:
        if isinstance(exc, exc_type):
            return HTTPException(
                status_code=status_code,
                detail={"error": type(exc).__name__, "message": str(exc)},
            )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": type(exc).__name__, "message": str(exc)},
    )
