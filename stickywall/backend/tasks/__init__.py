"""
Background Tasks Package.

Taskiq-based scheduled maintenance with a Redis broker.

Task functions are plain async functions and can be called directly
without Redis:

    from stickywall.backend.tasks.scheduled import cleanup_rate_limit_records
    await cleanup_rate_limit_records()

Important:
    Run only ONE scheduler instance to avoid duplicate task execution.
"""
