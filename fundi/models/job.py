"""
SQLAlchemy model for jobs.

A job is the trackable unit of work created when a provider accepts a
booking. Exactly one job exists per accepted booking (``booking_id`` is
unique). The job does not store a status of its own; ``Job.status`` reads
the owning booking's status.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, Float, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from .booking import Booking, BookingStatus, PaymentStatus
from .provider import ServiceCategory, _enum_values


class Job(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "jobs"

    booking_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("bookings.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )

    # Copied from the booking at creation time
    provider_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("providers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("clients.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    category: Mapped[ServiceCategory] = mapped_column(
        Enum(ServiceCategory, name="service_category", values_callable=_enum_values),
        nullable=False,
    )
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    destination_longitude: Mapped[float] = mapped_column(Float, nullable=False)
    destination_latitude: Mapped[float] = mapped_column(Float, nullable=False)
    destination_address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    amount_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Execution
    started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completion_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    distance_travelled_m: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Rating sub-record (claimed once, see ratingAggregator)
    rating_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    rating_review: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    booking: Mapped[Booking] = relationship(lazy="joined", innerjoin=True)

    @property
    def status(self) -> BookingStatus:
        return self.booking.status

    @property
    def payment_status(self) -> PaymentStatus:
        return self.booking.payment_status

    def __repr__(self) -> str:
        return f"<Job {self.id} booking={self.booking_id}>"
