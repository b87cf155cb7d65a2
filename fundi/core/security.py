"""
Bearer token decoding.

Tokens are issued by the external identity service. We only verify the
signature and read two claims: ``sub`` (the actor's UUID) and ``role``
(``client``, ``provider`` or ``admin``).
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from fundi.core.config import settings


class ActorRole(str, enum.Enum):
    CLIENT = "client"
    PROVIDER = "provider"
    ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of a request."""

    id: uuid.UUID
    role: ActorRole

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Raises:
        jwt.ExpiredSignatureError: If the token has expired.
        jwt.InvalidTokenError: If the token is otherwise invalid.
    """
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
    )


def actor_from_token(token: str) -> Actor:
    """Turn a bearer token into an ``Actor``.

    Raises:
        ValueError: If the token is invalid, expired, or missing claims.
    """
    try:
        payload = decode_token(token)
    except jwt.ExpiredSignatureError:
        raise ValueError("Access token has expired.")
    except jwt.InvalidTokenError:
        raise ValueError("Invalid access token.")

    subject = payload.get("sub")
    if subject is None:
        raise ValueError("Invalid token: missing subject.")
    try:
        actor_id = uuid.UUID(subject)
    except (ValueError, AttributeError):
        raise ValueError("Invalid token: malformed subject.")

    try:
        role = ActorRole(payload.get("role"))
    except ValueError:
        raise ValueError("Invalid token: unknown role.")

    return Actor(id=actor_id, role=role)


def create_access_token(
    actor_id: uuid.UUID,
    role: ActorRole,
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    """Mint a token. Used by tests and local tooling only."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(actor_id),
        "role": role.value,
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)
