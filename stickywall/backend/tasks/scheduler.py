"""
Task Scheduler Configuration.

Taskiq scheduler reading static schedules from task labels
(LabelScheduleSource).

Usage:
    python run.py --action scheduler

    # Or directly with taskiq
    taskiq scheduler stickywall.backend.tasks.scheduler:scheduler

Important:
    Run only ONE scheduler instance. Multiple instances will cause
    duplicate task execution.
"""

from typing import TYPE_CHECKING

from stickywall.backend.core.logging import get_logger

logger = get_logger(__name__)

if TYPE_CHECKING:
    from taskiq import TaskiqScheduler


def create_scheduler() -> "TaskiqScheduler":
    """Create the scheduler and register the scheduled tasks on its broker."""
    from taskiq import TaskiqScheduler
    from taskiq.schedule_sources import LabelScheduleSource

    from stickywall.backend.tasks.broker import get_broker
    from stickywall.backend.tasks.scheduled import register_scheduled_tasks

    broker = get_broker()
    register_scheduled_tasks()

    scheduler = TaskiqScheduler(
        broker=broker,
        sources=[LabelScheduleSource(broker)],
    )

    logger.info("Taskiq scheduler configured with LabelScheduleSource")
    return scheduler


_scheduler: "TaskiqScheduler | None" = None


def get_scheduler() -> "TaskiqScheduler":
    """Get the scheduler instance, creating it if necessary."""
    global _scheduler
    if _scheduler is None:
        _scheduler = create_scheduler()
    return _scheduler


def __getattr__(name: str):
    """Lazy attribute access for scheduler."""
    if name == "scheduler":
        return get_scheduler()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
