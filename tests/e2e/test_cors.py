"""
E2E: Cross-origin requests from browser clients.

Credentialed requests are only allowed for an explicit origin list; a
wildcard list answers with ``*`` and no credentials.
"""

from __future__ import annotations

from typing import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from fundi.core.config import Settings
from fundi.main import cors_origins, create_app


APP_ORIGIN = "http://localhost:3000"


def _preflight(origin: str) -> dict[str, str]:
    return {"Origin": origin, "Access-Control-Request-Method": "GET"}


def _client_for(engine, settings: Settings) -> AsyncClient:
    app = create_app(settings, engine=engine)
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest_asyncio.fixture
async def listed_client(engine) -> AsyncGenerator[AsyncClient, None]:
    async with _client_for(engine, Settings(cors_allowed_origins=APP_ORIGIN)) as ac:
        yield ac


@pytest_asyncio.fixture
async def wildcard_client(engine) -> AsyncGenerator[AsyncClient, None]:
    async with _client_for(engine, Settings(cors_allowed_origins="*")) as ac:
        yield ac


class TestOriginList:

    def test_default_has_no_wildcard(self):
        origins = cors_origins(Settings(_env_file=None))
        assert origins
        assert "*" not in origins

    def test_blank_entries_are_ignored(self):
        settings = Settings(cors_allowed_origins=" http://a.test , ,http://b.test,")
        assert cors_origins(settings) == ["http://a.test", "http://b.test"]


class TestListedOrigins:

    async def test_preflight_echoes_origin_with_credentials(self, listed_client):
        resp = await listed_client.options("/health", headers=_preflight(APP_ORIGIN))
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == APP_ORIGIN
        assert resp.headers["access-control-allow-credentials"] == "true"

    async def test_unlisted_origin_is_refused(self, listed_client):
        resp = await listed_client.options(
            "/health", headers=_preflight("http://evil.test")
        )
        assert resp.status_code == 400
        assert "access-control-allow-origin" not in resp.headers

        resp = await listed_client.get("/health", headers={"Origin": "http://evil.test"})
        assert resp.status_code == 200
        assert "access-control-allow-origin" not in resp.headers


class TestWildcardOrigins:

    async def test_wildcard_never_allows_credentials(self, wildcard_client):
        resp = await wildcard_client.get("/health", headers={"Origin": APP_ORIGIN})
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "*"
        assert "access-control-allow-credentials" not in resp.headers
