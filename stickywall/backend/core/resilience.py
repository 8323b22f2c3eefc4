"""
Resilience Infrastructure.

Circuit breaker listener, retry callback, and breaker factory.

The composed resilience stack is always applied in this order (outside-in):
    Circuit Breaker (aiobreaker) → Retry (tenacity) → Semaphore → Timeout → Call

Usage:
    from stickywall.backend.core.resilience import create_circuit_breaker, log_retry

    breaker = create_circuit_breaker("classifier", fail_max=5, timeout_duration=60)

    @retry(
        stop=stop_after_attempt(2),
        retry=retry_if_exception_type((ConnectionError, TimeoutError)),
        before_sleep=log_retry,
        reraise=True,
    )
    async def call_classifier():
        async with get_semaphore("llm"):
            async with asyncio.timeout(20):
                return await generator.generate(prompt, image)
"""

from datetime import timedelta
from typing import Any

import aiobreaker

from stickywall.backend.core.logging import get_logger

logger = get_logger(__name__)


class ResilienceLogger(aiobreaker.CircuitBreakerListener):
    """Circuit breaker listener that emits structured resilience events.

    Filter them with:

        jq 'select(.resilience_event != null)' logs/system.jsonl
    """

    def __init__(self, dependency: str) -> None:
        self.dependency = dependency

    def state_change(self, cb: aiobreaker.CircuitBreaker, old_state: Any, new_state: Any) -> None:
        event_map = {
            "open": "circuit_breaker_opened",
            "half-open": "circuit_breaker_half_open",
            "closed": "circuit_breaker_closed",
        }
        new_str = str(new_state).lower()
        event = event_map.get(new_str, f"circuit_breaker_{new_str}")
        log_level = "error" if new_str == "open" else "info"

        getattr(logger, log_level)(
            f"Circuit breaker {self.dependency}: {old_state} -> {new_state}",
            extra={
                "resilience_event": event,
                "dependency": self.dependency,
                "failure_count": cb.fail_counter,
            },
        )

    def failure(self, cb: aiobreaker.CircuitBreaker, exception: Exception) -> None:
        logger.warning(
            f"Circuit breaker {self.dependency}: failure recorded",
            extra={
                "resilience_event": "circuit_breaker_failure",
                "dependency": self.dependency,
                "failure_count": cb.fail_counter,
                "error": str(exception),
            },
        )


def log_retry(retry_state: Any) -> None:
    """Tenacity before_sleep callback that emits structured retry events."""
    error = None
    if retry_state.outcome and retry_state.outcome.failed:
        error = str(retry_state.outcome.exception())

    fn_name = getattr(retry_state.fn, "__name__", "unknown")

    logger.warning(
        f"Retrying {fn_name} (attempt {retry_state.attempt_number})",
        extra={
            "resilience_event": "retry_attempt",
            "dependency": fn_name,
            "attempt": retry_state.attempt_number,
            "error": error,
        },
    )


def create_circuit_breaker(
    dependency: str,
    fail_max: int = 5,
    timeout_duration: int = 30,
) -> aiobreaker.CircuitBreaker:
    """Create a circuit breaker with structured logging.

    Args:
        dependency: Name of the external dependency (for logging)
        fail_max: Number of failures before opening
        timeout_duration: Seconds to wait before half-open test
    """
    return aiobreaker.CircuitBreaker(
        fail_max=fail_max,
        timeout_duration=timedelta(seconds=timeout_duration),
        listeners=[ResilienceLogger(dependency)],
    )
