"""Circuit breaker for outbound payment gateway calls

States:
- CLOSED: calls pass through, consecutive failures are counted
- OPEN: calls are rejected immediately until recovery_timeout elapses
- HALF_OPEN: calls pass through; success_threshold successes close the
  circuit, any failure opens it again
"""

import logging
import time
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from src.domain.errors import GatewayUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        success_threshold: int = 2,
        recovery_timeout: float = 60.0,
        time_func: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.recovery_timeout = recovery_timeout
        self._time = time_func
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self._recovery_elapsed():
            self._transition(CircuitState.HALF_OPEN)
        return self._state

    def _recovery_elapsed(self) -> bool:
        return self._opened_at is not None and self._time() - self._opened_at >= self.recovery_timeout

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._successes = 0
        if new_state == CircuitState.OPEN:
            self._opened_at = self._time()
        elif new_state == CircuitState.CLOSED:
            self._failures = 0
            self._opened_at = None
        logger.warning(f"Circuit breaker '{self.name}': {old_state.value} -> {new_state.value}")

    def record_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._successes += 1
            if self._successes >= self.success_threshold:
                self._transition(CircuitState.CLOSED)
        else:
            self._failures = 0

    def record_failure(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN)
            return
        self._failures += 1
        if self._state == CircuitState.CLOSED and self._failures >= self.failure_threshold:
            self._transition(CircuitState.OPEN)

    def remaining_open_time(self) -> float:
        if self._opened_at is None:
            return 0.0
        return max(0.0, self.recovery_timeout - (self._time() - self._opened_at))

    async def call(self, func: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """
        Run an async callable under the breaker

        Raises:
            GatewayUnavailableError: the circuit is open
        """
        if self.state == CircuitState.OPEN:
            raise GatewayUnavailableError(
                f"Circuit breaker '{self.name}' is open",
                reason=f"retry in {self.remaining_open_time():.1f}s",
            )
        try:
            result = await func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result
