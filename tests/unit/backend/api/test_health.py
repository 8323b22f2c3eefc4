"""
Unit Tests for Health Check Endpoints.

Tests the health check functionality including:
- Liveness check (/health)
- Readiness check (/health/ready)
- Detailed health check (/health/detailed)
- Database and Redis connectivity checks
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import HTTPException

from stickywall.backend.api import health
from stickywall.backend.api.health import (
    _run_checks,
    check_database,
    check_redis,
    detailed_health_check,
    health_check,
    readiness_check,
)

HEALTHY = {"status": "healthy", "latency_ms": 1}


def _config(host="localhost", name="stickywall", background_tasks=False, db_timeout=1.0):
    config = MagicMock()
    config.database.host = host
    config.database.name = name
    config.features.background_tasks_enabled = background_tasks
    config.application.timeouts.database = db_timeout
    config.application.name = "Sticky Wall"
    config.application.environment = "test"
    config.application.debug = False
    config.application.version = "1.0.0"
    return config


class TestHealthCheck:
    @pytest.mark.asyncio
    async def test_health_returns_healthy(self):
        assert await health_check() == {"status": "healthy"}


class TestCheckDatabase:
    """Tests for the database health check function."""

    @pytest.mark.asyncio
    async def test_not_configured_without_host_or_url(self):
        with (
            patch.object(health, "get_app_config", return_value=_config(host="")),
            patch.object(health, "get_settings", return_value=MagicMock(database_url=None)),
        ):
            assert await check_database() == {"status": "not_configured"}

    @pytest.mark.asyncio
    async def test_healthy_against_real_session(self, db_session_factory):
        with (
            patch.object(health, "get_app_config", return_value=_config()),
            patch.object(health, "get_settings", return_value=MagicMock(database_url="sqlite+aiosqlite://")),
            patch("stickywall.backend.core.database.get_session_factory", return_value=db_session_factory),
        ):
            result = await check_database()

        assert result["status"] == "healthy"
        assert isinstance(result["latency_ms"], int)

    @pytest.mark.asyncio
    async def test_unhealthy_on_connection_error(self):
        factory = MagicMock(side_effect=ConnectionError("refused"))
        with (
            patch.object(health, "get_app_config", return_value=_config()),
            patch.object(health, "get_settings", return_value=MagicMock(database_url=None)),
            patch("stickywall.backend.core.database.get_session_factory", return_value=factory),
        ):
            result = await check_database()

        assert result == {"status": "unhealthy", "error": "refused"}


class TestCheckRedis:
    @pytest.mark.asyncio
    async def test_not_configured_without_background_tasks(self):
        with patch.object(health, "get_app_config", return_value=_config(background_tasks=False)):
            assert await check_redis() == {"status": "not_configured"}


class TestRunChecks:
    @pytest.mark.asyncio
    async def test_timeout_reports_error(self):
        async def slow():
            await asyncio.sleep(5)
            return HEALTHY

        with (
            patch.object(health, "check_database", slow),
            patch.object(health, "check_redis", AsyncMock(return_value=HEALTHY)),
        ):
            checks = await _run_checks(timeout=0.01)

        assert checks["database"]["status"] == "error"


class TestReadinessCheck:
    """Tests for /health/ready."""

    @pytest.mark.asyncio
    async def test_ready_when_all_healthy(self):
        with (
            patch.object(health, "get_app_config", return_value=_config()),
            patch.object(health, "check_database", AsyncMock(return_value=HEALTHY)),
            patch.object(health, "check_redis", AsyncMock(return_value={"status": "not_configured"})),
        ):
            result = await readiness_check()

        assert result["status"] == "healthy"
        assert result["checks"]["database"] == HEALTHY

    @pytest.mark.asyncio
    async def test_503_when_database_unhealthy(self):
        with (
            patch.object(health, "get_app_config", return_value=_config()),
            patch.object(health, "check_database", AsyncMock(return_value={"status": "unhealthy", "error": "x"})),
            patch.object(health, "check_redis", AsyncMock(return_value={"status": "not_configured"})),
        ):
            with pytest.raises(HTTPException) as exc_info:
                await readiness_check()

        assert exc_info.value.status_code == 503
        assert exc_info.value.detail["status"] == "unhealthy"


class TestDetailedHealthCheck:
    @pytest.mark.asyncio
    async def test_includes_application_info(self):
        with (
            patch.object(health, "get_app_config", return_value=_config()),
            patch.object(health, "check_database", AsyncMock(return_value=HEALTHY)),
            patch.object(health, "check_redis", AsyncMock(return_value={"status": "not_configured"})),
        ):
            result = await detailed_health_check()

        assert result["status"] == "healthy"
        assert result["application"]["name"] == "Sticky Wall"
        assert "pools" in result
