"""
Fundi SQLAlchemy Models
=======================

Central import point for all ORM models. Import ``Base`` from here for
the ``create_all`` convenience in tests.

Usage::

    from fundi.models import Base, Booking, Job, Provider
"""

# -- Base & Mixins --
from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin

# -- Providers --
from .provider import Provider, ProviderCategory, ProviderStatus, ServiceCategory

# -- Clients --
from .client import Client

# -- Bookings --
from .booking import Booking, BookingStatus, PaymentMethod, PaymentStatus

# -- Jobs --
from .job import Job

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    # Providers
    "Provider",
    "ProviderCategory",
    "ProviderStatus",
    "ServiceCategory",
    # Clients
    "Client",
    # Bookings
    "Booking",
    "BookingStatus",
    "PaymentMethod",
    "PaymentStatus",
    # Jobs
    "Job",
]
