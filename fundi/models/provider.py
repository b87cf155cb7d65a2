"""
SQLAlchemy models for providers and their service categories.
"""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class ServiceCategory(str, enum.Enum):
    MOVING = "moving"
    CLEANING = "cleaning"
    PLUMBING = "plumbing"
    ELECTRICAL = "electrical"
    PAINTING = "painting"
    CARPENTRY = "carpentry"
    APPLIANCE_REPAIR = "appliance_repair"
    PEST_CONTROL = "pest_control"
    GARDENING = "gardening"
    MASONRY = "masonry"
    MECHANIC = "mechanic"


class ProviderStatus(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    SUSPENDED = "suspended"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Provider(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "providers"

    business_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)

    status: Mapped[ProviderStatus] = mapped_column(
        Enum(ProviderStatus, name="provider_status", values_callable=_enum_values),
        nullable=False,
        default=ProviderStatus.PENDING,
    )
    verified_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    suspended_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    suspension_reason: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    # Location (null until the first fix arrives)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True, index=True)
    location_updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Rating statistic (written only by the rating aggregator)
    rating_average: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    rating_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rating_total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    # Pricing
    base_price_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    price_per_km_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="KES")

    category_links: Mapped[list["ProviderCategory"]] = relationship(
        back_populates="provider",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def categories(self) -> list[ServiceCategory]:
        return sorted((link.category for link in self.category_links), key=lambda c: c.value)

    def __repr__(self) -> str:
        return f"<Provider {self.id} {self.business_name!r} status={self.status}>"


class ProviderCategory(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "provider_categories"
    __table_args__ = (
        UniqueConstraint("provider_id", "category", name="uq_provider_category"),
    )

    provider_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("providers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category: Mapped[ServiceCategory] = mapped_column(
        Enum(ServiceCategory, name="service_category", values_callable=_enum_values),
        nullable=False,
        index=True,
    )

    provider: Mapped["Provider"] = relationship(back_populates="category_links")
