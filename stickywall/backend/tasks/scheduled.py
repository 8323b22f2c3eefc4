"""
Scheduled Background Tasks.

Tasks that run on a cron schedule. Each is a plain async function; it is
wrapped with broker.task() and its schedule label when
register_scheduled_tasks() is called, so tests can call it directly
without Redis.

Schedule Format:
    schedule=[{"cron": "* * * * *", "args": [...], "kwargs": {...}}]
"""

from datetime import timedelta
from typing import Any

from stickywall.backend.core.config import get_app_config
from stickywall.backend.core.database import get_session_factory
from stickywall.backend.core.logging import get_logger
from stickywall.backend.core.utils import utc_now
from stickywall.backend.repositories.rate_limit import RateLimitRepository
from stickywall.backend.services.rate_limit import cleanup_expired

logger = get_logger(__name__)


async def cleanup_rate_limit_records() -> dict[str, Any]:
    """
    Delete rate limit records past their retention period.

    Retention is the rate limit window times `retention_multiplier`
    (security.yaml). Runs hourly.
    """
    rate_limiting = get_app_config().security.rate_limiting
    now = utc_now()

    async with get_session_factory()() as session:
        deleted = await cleanup_expired(
            RateLimitRepository(session),
            now,
            timedelta(hours=rate_limiting.window_hours),
            rate_limiting.retention_multiplier,
        )
        await session.commit()

    return {
        "status": "completed",
        "deleted": deleted,
        "completed_at": now.isoformat(),
    }


SCHEDULED_TASKS = {
    "cleanup_rate_limit_records": {
        "function": cleanup_rate_limit_records,
        "schedule": [{"cron": "0 * * * *"}],
        "retry_on_error": False,
        "description": "Delete expired rate limit records every hour",
    },
}


def register_scheduled_tasks() -> dict[str, Any]:
    """
    Register scheduled task functions with the Taskiq broker.

    Returns:
        Dict mapping task names to registered task objects
    """
    from stickywall.backend.tasks.broker import get_broker

    broker = get_broker()
    registered = {}

    for task_name, config in SCHEDULED_TASKS.items():
        task_kwargs = {
            "task_name": task_name,
            "schedule": config["schedule"],
            "retry_on_error": config.get("retry_on_error", False),
        }
        if "max_retries" in config:
            task_kwargs["max_retries"] = config["max_retries"]

        registered[task_name] = broker.task(**task_kwargs)(config["function"])

    logger.info(
        "Scheduled tasks registered",
        extra={"task_count": len(registered), "tasks": list(registered.keys())},
    )
    return registered
