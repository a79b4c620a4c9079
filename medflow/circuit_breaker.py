"""Circuit breaker around the appointment store.

When the store keeps failing, further calls fail immediately instead of
waiting on timeouts; after a cool-down one trial call is let through.

States:
- CLOSED: calls pass through
- OPEN: calls fail fast with CircuitBreakerOpen
- HALF_OPEN: a single trial call decides between CLOSED and OPEN; other
  calls fail fast until it returns
"""
import logging
import threading
import time
from enum import Enum
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """Raised instead of calling the store while the circuit is open."""

    def __init__(self, retry_after: float):
        super().__init__(f"Appointment store circuit is open, retry after {retry_after:.1f}s")
        self.retry_after = retry_after


class CircuitBreaker:
    """Counts consecutive failures of a guarded callable."""

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: float = 60,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Args:
            failure_threshold: Consecutive failures before the circuit opens
            timeout: Seconds to stay open before a trial call
            clock: Monotonic time source (injectable for tests)
        """
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self._clock = clock
        self.failure_count = 0
        self.opened_at: Optional[float] = None
        self._state = CircuitState.CLOSED
        self._lock = threading.Lock()

    @property
    def state(self) -> str:
        return self._state.value

    def call(self, func: Callable, *args, **kwargs) -> Any:
        """
        Run ``func`` unless the circuit is open.

        Raises:
            CircuitBreakerOpen: while open and still cooling down, or while
                the half-open trial call is in flight
            Exception: whatever ``func`` raises (counted as a failure)
        """
        with self._lock:
            if self._state == CircuitState.OPEN:
                remaining = self._cooldown_remaining()
                if remaining > 0:
                    raise CircuitBreakerOpen(remaining)
                self._state = CircuitState.HALF_OPEN
                logger.info("Appointment store circuit half-open, sending trial call")
            elif self._state == CircuitState.HALF_OPEN:
                # Trial call still running
                raise CircuitBreakerOpen(0.0)

        try:
            result = func(*args, **kwargs)
        except Exception:
            with self._lock:
                self._record_failure()
            raise

        with self._lock:
            self._record_success()
        return result

    def reset(self):
        with self._lock:
            self._close()

    def _close(self):
        self.failure_count = 0
        self.opened_at = None
        self._state = CircuitState.CLOSED

    def _cooldown_remaining(self) -> float:
        if self.opened_at is None:
            return 0.0
        return max(0.0, self.timeout - (self._clock() - self.opened_at))

    def _record_success(self):
        if self._state == CircuitState.HALF_OPEN:
            logger.info("Appointment store recovered, circuit closed")
        self._close()

    def _record_failure(self):
        self.failure_count += 1

        if self._state == CircuitState.HALF_OPEN:
            self._open()
            logger.warning("Trial call failed, appointment store circuit re-opened")
        elif self.failure_count >= self.failure_threshold:
            self._open()
            logger.error(
                "Appointment store circuit opened after %d failures (cool-down %ss)",
                self.failure_count,
                self.timeout
            )

    def _open(self):
        self._state = CircuitState.OPEN
        self.opened_at = self._clock()
