"""
Circuit breakers guarding calls from the portal to downstream services.

A breaker opens after ``failure_threshold`` consecutive failures and rejects
calls with ``CircuitOpenError`` until ``recovery_timeout`` has passed. The
next call is then let through as a probe: success closes the breaker, failure
opens it again.
"""

import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict

from shared.errors import ExternalServiceError
from shared.logging import get_logger


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(ExternalServiceError):
    """Raised instead of calling a downstream whose breaker is open."""

    def __init__(self, downstream: str, retry_in: float):
        super().__init__(
            downstream,
            "circuit open",
            details={"retry_in_seconds": round(max(retry_in, 0.0), 1)}
        )
        self.downstream = downstream


class CircuitBreaker:
    """Consecutive-failure breaker for one downstream service."""

    def __init__(self, name: str, failure_threshold: int = 3, recovery_timeout: float = 30.0,
                 clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self.logger = get_logger(f"circuit_breaker.{name}")

        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = 0.0

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self._clock() - self._opened_at >= self.recovery_timeout:
            self._state = CircuitState.HALF_OPEN
            self.logger.info("Circuit half-open, probing downstream")
        return self._state

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Run func unless the breaker is open."""
        if self.state == CircuitState.OPEN:
            raise CircuitOpenError(self.name, self.recovery_timeout - (self._clock() - self._opened_at))

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self._record_failure()
            raise

        self._record_success()
        return result

    def _record_success(self):
        if self._state != CircuitState.CLOSED:
            self.logger.info("Circuit closed", previous=self._state.value)
        self._state = CircuitState.CLOSED
        self._failures = 0

    def _record_failure(self):
        self._failures += 1
        if self._state == CircuitState.HALF_OPEN or self._failures >= self.failure_threshold:
            self._state = CircuitState.OPEN
            self._opened_at = self._clock()
            self.logger.warning("Circuit opened", failures=self._failures, threshold=self.failure_threshold)


class CircuitBreakerRegistry:
    """Process-wide breakers, one per downstream name."""

    def __init__(self):
        self._breakers: Dict[str, CircuitBreaker] = {}

    def get(self, name: str, **kwargs) -> CircuitBreaker:
        if name not in self._breakers:
            self._breakers[name] = CircuitBreaker(name, **kwargs)
        return self._breakers[name]

    def states(self) -> Dict[str, str]:
        return {name: breaker.state.value for name, breaker in self._breakers.items()}

    def reset(self):
        self._breakers.clear()


circuit_breakers = CircuitBreakerRegistry()


def get_circuit_breaker(name: str, **kwargs) -> CircuitBreaker:
    """Get a breaker from the process-wide registry."""
    return circuit_breakers.get(name, **kwargs)
