"""
E2E test fixtures for the Fundi backend.

Provides:
- A per-test SQLite database (file-backed, so separate sessions get their
  own connections the way they would against PostgreSQL)
- The real application from ``create_app`` wired to that database
- httpx AsyncClient wired via ASGI transport (no network needed)
- Pre-populated seed data: clients and providers around Nairobi
- A recording notification dispatcher so tests can assert on deliveries
- Helpers for auth headers and for driving bookings through the API

SQLite's driver-level transaction handling is replaced with an explicit
``BEGIN IMMEDIATE`` so SAVEPOINTs work and concurrent writers serialise
instead of failing on lock upgrades.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient, Response
from sqlalchemy import event
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.ext.compiler import compiles

from fundi.core.database import build_session_factory, create_schema
from fundi.core.security import Actor, ActorRole, create_access_token
from fundi.integrations.notifications import RecordingNotificationDispatcher
from fundi.main import create_app


# SQLite gives a column declared "UUID" numeric affinity, which turns
# all-digit hex ids into REAL values; store the 32-char hex form as text.
@compiles(UUID, "sqlite")
def compile_uuid_sqlite(type_, compiler, **kw):
    return "CHAR(32)"


# ---------------------------------------------------------------------------
# Test IDs (stable across tests so cross-references work)
# ---------------------------------------------------------------------------

CLIENT_ID = uuid.UUID("aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa")
OTHER_CLIENT_ID = uuid.UUID("abababab-abab-abab-abab-abababababab")
ADMIN_ID = uuid.UUID("dddddddd-dddd-dddd-dddd-dddddddddddd")

# Verified plumber/electrician in the CBD, available, unrated
PROVIDER_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
# Verified plumber ~2 km east, available, highly rated, pricier
RATED_PROVIDER_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")
# Pending plumber ~600 m north, not available, cheapest
PENDING_PROVIDER_ID = uuid.UUID("33333333-3333-3333-3333-333333333333")
# Suspended plumber right next to the CBD provider
SUSPENDED_PROVIDER_ID = uuid.UUID("44444444-4444-4444-4444-444444444444")
# Verified cleaner in the CBD (wrong category for plumbing searches)
CLEANER_ID = uuid.UUID("55555555-5555-5555-5555-555555555555")
# Verified plumber in Mombasa (far outside any Nairobi radius)
MOMBASA_PROVIDER_ID = uuid.UUID("66666666-6666-6666-6666-666666666666")

CBD_LONGITUDE = 36.8219
CBD_LATITUDE = -1.2921

SCHEDULED_AT = datetime(2026, 11, 2, 9, 30, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Engine + session factory (file-backed SQLite)
# ---------------------------------------------------------------------------


def _install_sqlite_transaction_hooks(engine: AsyncEngine) -> None:
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _):
        # Let SQLAlchemy, not the driver, decide when transactions begin
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'fundi.db'}",
        connect_args={"timeout": 30},
    )
    _install_sqlite_transaction_hooks(engine)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------


async def _seed_data(db: AsyncSession) -> None:
    """Insert minimum seed data for E2E tests."""
    from fundi.models.client import Client
    from fundi.models.provider import (
        Provider,
        ProviderCategory,
        ProviderStatus,
        ServiceCategory,
    )

    now = datetime.now(timezone.utc)

    # -- Clients --
    db.add_all(
        [
            Client(
                id=CLIENT_ID,
                name="Wanjiru Kamau",
                email="wanjiru@test.fundi.co.ke",
                phone="+254700000001",
                longitude=36.8220,
                latitude=-1.2922,
                address="Kenyatta Avenue, Nairobi",
            ),
            Client(
                id=OTHER_CLIENT_ID,
                name="Otieno Odhiambo",
                email="otieno@test.fundi.co.ke",
                phone="+254700000002",
            ),
        ]
    )

    # -- Providers --
    def provider(
        provider_id: uuid.UUID,
        name: str,
        longitude: float,
        latitude: float,
        categories: list[ServiceCategory],
        *,
        status: ProviderStatus = ProviderStatus.VERIFIED,
        is_available: bool = True,
        rating_average: float = 0.0,
        rating_count: int = 0,
        base_price_cents: int = 1500,
    ) -> Provider:
        p = Provider(
            id=provider_id,
            business_name=name,
            status=status,
            verified_at=now if status == ProviderStatus.VERIFIED else None,
            suspended_at=now if status == ProviderStatus.SUSPENDED else None,
            longitude=longitude,
            latitude=latitude,
            location_updated_at=now,
            is_available=is_available,
            rating_average=rating_average,
            rating_count=rating_count,
            rating_total=rating_average * rating_count,
            base_price_cents=base_price_cents,
            currency="KES",
        )
        p.category_links = [ProviderCategory(category=c) for c in categories]
        return p

    db.add_all(
        [
            provider(
                PROVIDER_ID,
                "CBD Plumbing & Electric",
                CBD_LONGITUDE,
                CBD_LATITUDE,
                [ServiceCategory.PLUMBING, ServiceCategory.ELECTRICAL],
            ),
            provider(
                RATED_PROVIDER_ID,
                "Upper Hill Plumbers",
                36.8400,
                -1.2921,
                [ServiceCategory.PLUMBING],
                rating_average=4.8,
                rating_count=25,
                base_price_cents=4000,
            ),
            provider(
                PENDING_PROVIDER_ID,
                "Ngara Pipe Works",
                36.8219,
                -1.2867,
                [ServiceCategory.PLUMBING],
                status=ProviderStatus.PENDING,
                is_available=False,
                base_price_cents=800,
            ),
            provider(
                SUSPENDED_PROVIDER_ID,
                "Suspended Fixers",
                36.8221,
                -1.2921,
                [ServiceCategory.PLUMBING],
                status=ProviderStatus.SUSPENDED,
                is_available=False,
            ),
            provider(
                CLEANER_ID,
                "Sparkle Cleaners",
                CBD_LONGITUDE,
                CBD_LATITUDE,
                [ServiceCategory.CLEANING],
            ),
            provider(
                MOMBASA_PROVIDER_ID,
                "Coast Plumbing",
                39.6682,
                -4.0435,
                [ServiceCategory.PLUMBING],
            ),
        ]
    )
    await db.flush()


@pytest_asyncio.fixture
async def seeded(session_factory) -> None:
    async with session_factory() as db:
        await _seed_data(db)
        await db.commit()


# ---------------------------------------------------------------------------
# FastAPI test application
# ---------------------------------------------------------------------------


@pytest.fixture
def notifier() -> RecordingNotificationDispatcher:
    return RecordingNotificationDispatcher()


@pytest_asyncio.fixture
async def client(
    engine: AsyncEngine,
    seeded: None,
    notifier: RecordingNotificationDispatcher,
) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient connected to the real app via ASGI transport."""
    app = create_app(engine=engine, notifier=notifier)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------


def auth_headers(actor_id: uuid.UUID, role: ActorRole) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(actor_id, role)}"}


CLIENT_HEADERS = auth_headers(CLIENT_ID, ActorRole.CLIENT)
OTHER_CLIENT_HEADERS = auth_headers(OTHER_CLIENT_ID, ActorRole.CLIENT)
PROVIDER_HEADERS = auth_headers(PROVIDER_ID, ActorRole.PROVIDER)
RATED_PROVIDER_HEADERS = auth_headers(RATED_PROVIDER_ID, ActorRole.PROVIDER)
ADMIN_HEADERS = auth_headers(ADMIN_ID, ActorRole.ADMIN)

CLIENT = Actor(CLIENT_ID, ActorRole.CLIENT)
PROVIDER = Actor(PROVIDER_ID, ActorRole.PROVIDER)
ADMIN = Actor(ADMIN_ID, ActorRole.ADMIN)


# ---------------------------------------------------------------------------
# Helpers: drive bookings via the API
# ---------------------------------------------------------------------------


async def create_booking_via_api(
    client: AsyncClient,
    *,
    provider_id: uuid.UUID = PROVIDER_ID,
    category: str = "plumbing",
    headers: dict[str, str] | None = None,
    **extra: Any,
) -> Response:
    """POST to /api/v1/bookings and return the response."""
    payload = {
        "provider_id": str(provider_id),
        "category": category,
        "scheduled_at": SCHEDULED_AT.isoformat(),
        "destination": {"longitude": 36.8220, "latitude": -1.2922},
        "destination_address": "Kenyatta Avenue, Nairobi",
        "notes": "Kitchen sink leaking",
        "amount_cents": 2500,
        "payment_method": "mpesa",
    }
    payload.update(extra)
    return await client.post(
        "/api/v1/bookings", json=payload, headers=headers or CLIENT_HEADERS
    )


async def fire_event(
    client: AsyncClient,
    booking_id: str,
    event_name: str,
    headers: dict[str, str] = PROVIDER_HEADERS,
    json: dict[str, Any] | None = None,
) -> Response:
    """POST /api/v1/bookings/{booking_id}/{event_name} and return response."""
    return await client.post(
        f"/api/v1/bookings/{booking_id}/{event_name}", headers=headers, json=json
    )


async def booking_in_status(client: AsyncClient, status: str) -> dict[str, Any]:
    """Create a booking and drive it to ``status`` with the CBD provider."""
    resp = await create_booking_via_api(client)
    assert resp.status_code == 201, resp.text
    booking = resp.json()

    path = {
        "pending": [],
        "accepted": ["accept"],
        "in_progress": ["accept", "start"],
        "completed": ["accept", "start", "complete"],
        "rejected": ["reject"],
        "cancelled": ["cancel"],
    }[status]
    for step in path:
        resp = await fire_event(client, booking["id"], step)
        assert resp.status_code == 200, resp.text
        booking = resp.json()["booking"]
    return booking
