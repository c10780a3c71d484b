"""
Tests for Status API Routes.

Tests health check endpoints and the database status check.
"""

from unittest.mock import AsyncMock, patch

import pytest

from app.api import status_routes
from app.api.status_routes import (
    ProviderStatus,
    StatusLevel,
    check_postgresql,
)


@pytest.fixture(autouse=True)
def clear_status_cache():
    status_routes._status_cache.clear()
    yield
    status_routes._status_cache.clear()


class TestStatusLevel:
    """Tests for StatusLevel enum."""

    def test_status_levels_exist(self):
        assert StatusLevel.OPERATIONAL == "operational"
        assert StatusLevel.DEGRADED == "degraded"
        assert StatusLevel.OUTAGE == "outage"


class TestCheckPostgresql:
    """Tests for check_postgresql."""

    @pytest.mark.asyncio
    async def test_operational(self, db_session):
        result = await check_postgresql(db_session)

        assert isinstance(result, ProviderStatus)
        assert result.status == StatusLevel.OPERATIONAL
        assert result.latency_ms is not None
        db_session.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connection_failure(self, db_session):
        db_session.execute = AsyncMock(side_effect=ConnectionError("refused"))

        result = await check_postgresql(db_session)

        assert result.status == StatusLevel.OUTAGE
        assert result.message == "Connection failed"
        assert result.latency_ms is None

    @pytest.mark.asyncio
    async def test_high_latency_is_degraded(self, db_session):
        with patch.object(status_routes.time, "perf_counter", side_effect=[0.0, 2.5]):
            result = await check_postgresql(db_session)

        assert result.status == StatusLevel.DEGRADED
        assert result.latency_ms == 2500


class TestHealthEndpoint:
    """Tests for GET /health."""

    def test_healthy(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"

    def test_unhealthy(self, client, db_session):
        db_session.execute = AsyncMock(side_effect=ConnectionError("refused"))

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["detail"]["database"] == "disconnected"


class TestStatusEndpoint:
    """Tests for GET /v1/status."""

    def test_status(self, client):
        response = client.get("/v1/status")

        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "community-platform-auth"
        assert data["providers"]["postgresql"]["status"] == "operational"

    def test_status_is_cached(self, client, db_session):
        client.get("/v1/status")
        client.get("/v1/status")

        assert db_session.execute.await_count == 1
