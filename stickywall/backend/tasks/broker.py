"""
Taskiq Broker Configuration.

Redis-backed message broker for background task processing. Queue name
and result expiry come from database.yaml `redis.broker`.

Usage:
    # Start worker process
    python run.py --action worker

    # Or directly with taskiq
    taskiq worker stickywall.backend.tasks.worker:broker
"""

from typing import TYPE_CHECKING

from stickywall.backend.core.config import get_app_config, get_redis_url
from stickywall.backend.core.logging import get_logger

logger = get_logger(__name__)

if TYPE_CHECKING:
    from taskiq_redis import ListQueueBroker


def create_broker() -> "ListQueueBroker":
    """Create the Taskiq broker with a Redis result backend."""
    from taskiq_redis import ListQueueBroker, RedisAsyncResultBackend

    redis_url = get_redis_url()
    broker_config = get_app_config().database.redis.broker

    result_backend = RedisAsyncResultBackend(
        redis_url=redis_url,
        result_ex_time=broker_config.result_expiry_seconds,
    )

    broker = ListQueueBroker(
        url=redis_url,
        queue_name=broker_config.queue_name,
    ).with_result_backend(result_backend)

    logger.debug(
        "Taskiq broker configured",
        extra={
            "queue_name": broker_config.queue_name,
            "result_expiry": broker_config.result_expiry_seconds,
        },
    )
    return broker


_broker: "ListQueueBroker | None" = None


def get_broker() -> "ListQueueBroker":
    """Get the broker instance, creating it if necessary."""
    global _broker
    if _broker is None:
        _broker = create_broker()

        @_broker.on_event("startup")
        async def on_startup() -> None:
            from stickywall.backend.core.logging import setup_logging
            setup_logging()
            logger.info("Taskiq worker starting up")

        @_broker.on_event("shutdown")
        async def on_shutdown() -> None:
            from stickywall.backend.core.database import dispose_engine
            await dispose_engine()
            logger.info("Taskiq worker shutting down")

    return _broker


def __getattr__(name: str):
    """Lazy attribute access for broker."""
    if name == "broker":
        return get_broker()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
