"""
Shared FastAPI dependencies for the Fundi backend.

Provides the async database session dependency used by all route handlers,
the notification dispatcher, and authentication dependencies for extracting
the current actor from JWT Bearer tokens.

The engine, session factory and dispatcher are created once by the
application lifespan (see ``fundi.main.create_app``) and stored on
``app.state``; nothing here opens a connection at import time.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from fundi.core.security import Actor, ActorRole, actor_from_token
from fundi.integrations.notifications import (
    NotificationDispatcher,
    discard_queued,
    dispatch_queued,
)


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session that is automatically closed after the
    request completes.  All route handlers should depend on this to get their
    ``AsyncSession``.

    Usage in a route::

        @router.get("/items")
        async def list_items(db: DBSession):
            ...
    """
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            discard_queued(session)
            await session.rollback()
            raise
        else:
            # Only committed changes are announced
            await dispatch_queued(session)
        finally:
            await session.close()


def get_notifier(request: Request) -> NotificationDispatcher:
    return request.app.state.notifier


# ---------------------------------------------------------------------------
# Annotated type aliases for convenience
# ---------------------------------------------------------------------------
DBSession = Annotated[AsyncSession, Depends(get_db)]
Notifier = Annotated[NotificationDispatcher, Depends(get_notifier)]


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

_bearer_scheme = HTTPBearer(auto_error=True)


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(_bearer_scheme)],
) -> Actor:
    """Extract and validate a Bearer token from the Authorization header.

    Raises 401 if the token is missing, expired, or malformed.
    """
    try:
        return actor_from_token(credentials.credentials)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        )


def require_role(*roles: ActorRole):
    """Dependency factory that admits only the given roles."""

    async def _check(actor: Annotated[Actor, Depends(get_current_actor)]) -> Actor:
        if actor.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(r.value for r in roles)}.",
            )
        return actor

    return _check


CurrentActor = Annotated[Actor, Depends(get_current_actor)]
AdminActor = Annotated[Actor, Depends(require_role(ActorRole.ADMIN))]
ProviderActor = Annotated[Actor, Depends(require_role(ActorRole.PROVIDER))]
