"""
Booking State Manager
=====================

Finite state machine governing all valid booking status transitions. Every
status change MUST go through ``validate_transition`` before being persisted.

State machine overview::

    pending --> accepted --> in_progress --> completed
    pending --> rejected
    pending --> cancelled
    accepted --> cancelled

``rejected``, ``completed`` and ``cancelled`` are terminal.

Guards enforce which actor may trigger each event. An admin may trigger
any structurally valid transition.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from fundi.core.security import ActorRole
from fundi.models.booking import BookingStatus


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class BookingEvent(str, enum.Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    START = "start"
    COMPLETE = "complete"
    CANCEL = "cancel"


# ---------------------------------------------------------------------------
# Transition guard result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TransitionResult:
    """Result of a transition validation attempt."""
    allowed: bool
    target: BookingStatus | None = None
    reason: str | None = None


# ---------------------------------------------------------------------------
# Transition definitions
# ---------------------------------------------------------------------------

# Each key is the current status, and the value is a set of statuses it can
# transition to. Guards are checked separately.
VALID_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.PENDING: {
        BookingStatus.ACCEPTED,
        BookingStatus.REJECTED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.ACCEPTED: {
        BookingStatus.IN_PROGRESS,
        BookingStatus.CANCELLED,
    },
    BookingStatus.IN_PROGRESS: {
        BookingStatus.COMPLETED,
    },
    BookingStatus.REJECTED: set(),
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
}

TERMINAL_STATUSES: frozenset[BookingStatus] = frozenset(
    status for status, targets in VALID_TRANSITIONS.items() if not targets
)

EVENT_TARGETS: dict[BookingEvent, BookingStatus] = {
    BookingEvent.ACCEPT: BookingStatus.ACCEPTED,
    BookingEvent.REJECT: BookingStatus.REJECTED,
    BookingEvent.START: BookingStatus.IN_PROGRESS,
    BookingEvent.COMPLETE: BookingStatus.COMPLETED,
    BookingEvent.CANCEL: BookingStatus.CANCELLED,
}

# Which roles may trigger each event (admin is always allowed)
_EVENT_ROLES: dict[BookingEvent, frozenset[ActorRole]] = {
    BookingEvent.ACCEPT: frozenset({ActorRole.PROVIDER}),
    BookingEvent.REJECT: frozenset({ActorRole.PROVIDER}),
    BookingEvent.START: frozenset({ActorRole.PROVIDER}),
    BookingEvent.COMPLETE: frozenset({ActorRole.PROVIDER}),
    BookingEvent.CANCEL: frozenset({ActorRole.CLIENT, ActorRole.PROVIDER}),
}


# ---------------------------------------------------------------------------
# Guard functions
# ---------------------------------------------------------------------------

def can_trigger(event: BookingEvent, role: ActorRole) -> bool:
    """Whether ``role`` may fire ``event`` at all, ignoring current status."""
    return role == ActorRole.ADMIN or role in _EVENT_ROLES[event]


def _guard_actor(event: BookingEvent, role: ActorRole) -> TransitionResult:
    if can_trigger(event, role):
        return TransitionResult(allowed=True, target=EVENT_TARGETS[event])
    allowed = ", ".join(sorted(r.value for r in _EVENT_ROLES[event]))
    return TransitionResult(
        allowed=False,
        reason=f"Only {allowed} may {event.value} a booking.",
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def validate_transition(
    current_status: BookingStatus,
    event: BookingEvent,
    role: ActorRole = ActorRole.ADMIN,
) -> TransitionResult:
    """Validate whether ``event`` may fire from ``current_status``.

    Checks two layers:
    1. Is the transition structurally valid per the state machine?
    2. Does the actor's role permit this event (guards)?

    Returns a ``TransitionResult`` with ``allowed=True`` and the target
    status, or ``allowed=False`` with a human-readable ``reason``.
    """
    target = EVENT_TARGETS[event]

    # 1. Structural check
    allowed_targets = VALID_TRANSITIONS.get(current_status, set())
    if target not in allowed_targets:
        if current_status in TERMINAL_STATUSES:
            reason = (
                f"Cannot {event.value} a booking that is already "
                f"'{current_status.value}'."
            )
        else:
            reason = (
                f"Invalid transition: '{current_status.value}' -> '{target.value}'. "
                f"Allowed transitions from '{current_status.value}': "
                f"{', '.join(s.value for s in sorted(allowed_targets, key=lambda s: s.value)) or 'none'}."
            )
        return TransitionResult(allowed=False, reason=reason)

    # 2. Guard check
    return _guard_actor(event, role)


def get_valid_events(
    current_status: BookingStatus,
    role: ActorRole = ActorRole.ADMIN,
) -> list[BookingEvent]:
    """Return the events the given role can fire from the current status.

    Useful for UI hints (e.g. showing available actions to the user).
    """
    return [
        event
        for event in BookingEvent
        if validate_transition(current_status, event, role).allowed
    ]


def is_terminal(status: BookingStatus) -> bool:
    return status in TERMINAL_STATUSES
