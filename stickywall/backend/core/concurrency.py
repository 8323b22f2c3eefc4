"""
Concurrency Infrastructure.

Thread pool and semaphore management for the application.
The pool is created lazily on first access and cleaned up during shutdown.

Pools:
    _io_pool    - TracedThreadPoolExecutor for blocking I/O (boto3 object storage calls)

Semaphores:
    Created per-dependency to limit concurrent access to external services.
    Sizing is configured in config/settings/concurrency.yaml.

Usage:
    from stickywall.backend.core.concurrency import get_io_pool, get_semaphore

    async with get_semaphore("storage"):
        await loop.run_in_executor(get_io_pool(), blocking_fn, arg)
"""

import asyncio
import contextvars
from concurrent.futures import ThreadPoolExecutor

from stickywall.backend.core.logging import get_logger

logger = get_logger(__name__)

_io_pool: ThreadPoolExecutor | None = None
_semaphores: dict[str, asyncio.Semaphore] = {}


class TracedThreadPoolExecutor(ThreadPoolExecutor):
    """ThreadPoolExecutor that propagates contextvars to worker threads.

    The standard executor does not carry structlog context (request_id and
    friends) into worker threads; this subclass copies it before dispatch.
    """

    def submit(self, fn, /, *args, **kwargs):
        ctx = contextvars.copy_context()
        return super().submit(ctx.run, fn, *args, **kwargs)


def get_io_pool() -> TracedThreadPoolExecutor:
    """Get the shared thread pool for blocking I/O operations."""
    global _io_pool
    if _io_pool is None:
        from stickywall.backend.core.config import get_app_config
        max_workers = get_app_config().concurrency.thread_pool.max_workers
        _io_pool = TracedThreadPoolExecutor(max_workers=max_workers)
        logger.info("Thread pool created", extra={"max_workers": max_workers})
    return _io_pool


def get_semaphore(name: str) -> asyncio.Semaphore:
    """Get a named semaphore for concurrency-limiting external calls.

    The capacity is read from concurrency.yaml under `semaphores.<name>`.
    Unconfigured names default to 20.
    """
    if name not in _semaphores:
        from stickywall.backend.core.config import get_app_config
        semaphore_config = get_app_config().concurrency.semaphores
        capacity = getattr(semaphore_config, name, 20)
        _semaphores[name] = asyncio.Semaphore(capacity)
        logger.debug("Semaphore created", extra={"name": name, "capacity": capacity})
    return _semaphores[name]


async def shutdown_pools() -> None:
    """Shut down the pool gracefully. Called during application shutdown."""
    global _io_pool

    if _io_pool is not None:
        await asyncio.to_thread(_io_pool.shutdown, wait=True)
        logger.info("Thread pool shut down")
        _io_pool = None

    _semaphores.clear()
