"""
Health Check Endpoints.

Provides liveness, readiness, and detailed health checks.

Endpoints:
- /health: Liveness check (process running)
- /health/ready: Readiness check (dependencies available)
- /health/detailed: Component-by-component status (for debugging)
"""

import asyncio
from typing import Any

from fastapi import APIRouter, HTTPException
from sqlalchemy import text

from stickywall.backend.core.config import get_app_config, get_redis_url, get_settings
from stickywall.backend.core.logging import get_logger
from stickywall.backend.core.utils import utc_now

router = APIRouter()
logger = get_logger(__name__)


async def check_database() -> dict[str, Any]:
    """
    Check database connectivity.

    Returns:
        Dict with status, latency, and optional error message
    """
    try:
        from stickywall.backend.core.database import get_session_factory

        db_config = get_app_config().database
        if not get_settings().database_url and (not db_config.host or not db_config.name):
            return {"status": "not_configured"}

        start = utc_now()
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))

        latency_ms = int((utc_now() - start).total_seconds() * 1000)
        return {"status": "healthy", "latency_ms": latency_ms}

    except Exception as e:
        logger.warning("Database health check failed", extra={"error": str(e)})
        return {"status": "unhealthy", "error": str(e)}


async def check_redis() -> dict[str, Any]:
    """
    Check Redis connectivity.

    Redis only backs the task queue, so it is reported as not configured
    while background tasks are disabled.
    """
    if not get_app_config().features.background_tasks_enabled:
        return {"status": "not_configured"}

    try:
        import redis.asyncio as redis

        start = utc_now()
        client = redis.from_url(get_redis_url())
        await client.ping()
        await client.aclose()

        latency_ms = int((utc_now() - start).total_seconds() * 1000)
        return {"status": "healthy", "latency_ms": latency_ms}

    except Exception as e:
        logger.warning("Redis health check failed", extra={"error": str(e)})
        return {"status": "unhealthy", "error": str(e)}


async def _run_checks(timeout: float | None = None) -> dict[str, dict[str, Any]]:
    db_result: dict[str, Any] = {"status": "error", "error": "check did not run"}
    redis_result: dict[str, Any] = {"status": "error", "error": "check did not run"}

    try:
        async with asyncio.timeout(timeout):
            try:
                async with asyncio.TaskGroup() as tg:
                    db_task = tg.create_task(check_database())
                    redis_task = tg.create_task(check_redis())
                db_result = db_task.result()
                redis_result = redis_task.result()
            except* Exception as eg:
                for exc in eg.exceptions:
                    logger.warning("Health check task failed", extra={"error": str(exc)})
    except TimeoutError:
        logger.warning("Health checks timed out", extra={"timeout": timeout})

    return {"database": db_result, "redis": redis_result}


@router.get("/health")
async def health_check() -> dict[str, str]:
    """
    Liveness check.

    Returns 200 if the process is running. No dependency checks.
    """
    return {"status": "healthy"}


@router.get("/health/ready")
async def readiness_check() -> dict[str, Any]:
    """
    Readiness check.

    Checks the database and Redis in parallel, bounded by the database
    timeout from application.yaml. Returns 503 if any is unhealthy.
    """
    timeout = get_app_config().application.timeouts.database
    checks = await _run_checks(timeout)

    unhealthy_checks = [
        name for name, check in checks.items()
        if check.get("status") in ("unhealthy", "error")
    ]

    if unhealthy_checks:
        logger.warning(
            "Readiness check failed",
            extra={"unhealthy": unhealthy_checks, "checks": checks},
        )
        raise HTTPException(
            status_code=503,
            detail={
                "status": "unhealthy",
                "checks": checks,
                "timestamp": utc_now().isoformat(),
            },
        )

    return {
        "status": "healthy",
        "checks": checks,
        "timestamp": utc_now().isoformat(),
    }


@router.get("/health/detailed")
async def detailed_health_check() -> dict[str, Any]:
    """Dependency checks plus application info and pool metrics."""
    checks = await _run_checks()

    app_settings = get_app_config().application
    app_info = {
        "name": app_settings.name,
        "env": app_settings.environment,
        "debug": app_settings.debug,
        "version": app_settings.version,
    }

    statuses = [check.get("status") for check in checks.values()]
    overall_status = "unhealthy" if "unhealthy" in statuses or "error" in statuses else "healthy"

    return {
        "status": overall_status,
        "application": app_info,
        "checks": checks,
        "pools": _get_pool_status(),
        "timestamp": utc_now().isoformat(),
    }


def _get_pool_status() -> dict[str, Any]:
    """Collect current pool and semaphore metrics for health reporting."""
    from stickywall.backend.core.concurrency import _io_pool, _semaphores

    pools: dict[str, Any] = {}

    if _io_pool is not None:
        pools["thread_pool"] = {"max_workers": _io_pool._max_workers}

    if _semaphores:
        pools["semaphores"] = {
            name: {"available": sem._value} for name, sem in _semaphores.items()
        }

    return pools
