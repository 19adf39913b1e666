"""Per-service circuit breaker for criterion scorers and collector artifacts."""

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from .errors import CircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")

CLOSED = "closed"
OPEN = "open"
HALF_OPEN = "half_open"


@dataclass
class ServiceState:
    failures: int = 0
    last_failure: float | None = None
    opened_at: float | None = None
    trial_running: bool = False


class CircuitBreaker:
    """Stops calling a service after repeated failures.

    ``failure_threshold`` failures within ``monitoring_window`` seconds open the
    circuit. While open, calls go to the fallback, or raise CircuitOpenError
    when there is none. After ``recovery_timeout`` seconds one trial call is let
    through: success closes the circuit, failure opens it again.
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        recovery_timeout: float = 30.0,
        monitoring_window: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.monitoring_window = monitoring_window
        self._clock = clock
        self._services: dict[str, ServiceState] = {}

    def state(self, service: str) -> str:
        current = self._services.get(service)
        if current is None or current.opened_at is None:
            return CLOSED
        if current.trial_running or self._clock() - current.opened_at < self.recovery_timeout:
            return OPEN
        return HALF_OPEN

    def failures(self, service: str) -> int:
        current = self._services.get(service)
        return current.failures if current else 0

    def reset(self, service: str | None = None) -> None:
        if service is None:
            self._services.clear()
        else:
            self._services.pop(service, None)

    async def call(
        self,
        service: str,
        fn: Callable[[], Awaitable[T]],
        fallback: Callable[[], Awaitable[T]] | None = None,
    ) -> T:
        """Run ``fn`` under the breaker for ``service``."""
        current = self._services.setdefault(service, ServiceState())
        status = self.state(service)

        if status == OPEN:
            retry_in = max(0.0, self.recovery_timeout - (self._clock() - current.opened_at))
            logger.info("Circuit open for %s, skipping call (retry in %.0fs)", service, retry_in)
            if fallback is not None:
                return await fallback()
            raise CircuitOpenError(service, retry_in)

        trial = status == HALF_OPEN
        if trial:
            logger.info("Circuit half-open for %s, trying one call", service)
            current.trial_running = True

        try:
            result = await fn()
        except Exception as e:
            self._record_failure(service, current, trial)
            logger.warning("Service %s failed (%d/%d): %s",
                           service, current.failures, self.failure_threshold, e)
            if current.opened_at is not None and fallback is not None:
                return await fallback()
            raise
        finally:
            if trial:
                current.trial_running = False

        if current.opened_at is not None or current.failures:
            logger.info("Circuit closed for %s", service)
        current.failures = 0
        current.last_failure = None
        current.opened_at = None
        return result

    def _record_failure(self, service: str, current: ServiceState, trial: bool) -> None:
        now = self._clock()
        if current.last_failure is not None and now - current.last_failure > self.monitoring_window:
            current.failures = 0
        current.failures += 1
        current.last_failure = now

        if trial or current.failures >= self.failure_threshold:
            if current.opened_at is None or trial:
                logger.warning("Circuit opened for %s after %d failure(s)", service, current.failures)
            current.opened_at = now
