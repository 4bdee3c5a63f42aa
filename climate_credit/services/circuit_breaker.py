import logging
import threading
import time
from enum import Enum
from typing import Any, Callable

from climate_credit.core.errors import ErrorKind, ProviderError

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "CLOSED"       # Normal operation
    OPEN = "OPEN"           # Provider skipped, fails fast
    HALF_OPEN = "HALF_OPEN" # Testing recovery


class CircuitBreaker:
    """One breaker per provider, so a dead primary stops costing a timeout per request.

    Shared by every request thread; state transitions happen under ``_lock``
    but the wrapped call itself runs outside it.
    """

    def __init__(self, name: str, failure_threshold: int = 3, recovery_timeout: int = 45):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.last_failure_time = 0.0
        self._lock = threading.Lock()

    def call(self, func: Callable, *args, **kwargs) -> Any:
        """
        Executes the function if circuit is CLOSED or HALF_OPEN.
        Raises ProviderError(UpstreamError) if OPEN.
        """
        with self._lock:
            if self.state == CircuitState.OPEN:
                time_since_failure = time.time() - self.last_failure_time
                if time_since_failure > self.recovery_timeout:
                    logger.warning("Circuit %s: entering HALF_OPEN (testing recovery)", self.name)
                    self.state = CircuitState.HALF_OPEN
                else:
                    remaining = int(self.recovery_timeout - time_since_failure)
                    raise ProviderError(
                        self.name,
                        ErrorKind.UPSTREAM_ERROR,
                        f"Circuit for {self.name} is OPEN. Retry in {remaining}s",
                    )

        try:
            result = func(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    def _on_success(self):
        with self._lock:
            if self.state != CircuitState.CLOSED:
                logger.info("Circuit %s: call succeeded, closing circuit", self.name)
                self.state = CircuitState.CLOSED
            self.failure_count = 0

    def _on_failure(self):
        with self._lock:
            self.failure_count += 1
            self.last_failure_time = time.time()

            if self.state == CircuitState.HALF_OPEN or (
                self.state != CircuitState.OPEN and self.failure_count >= self.failure_threshold
            ):
                self.state = CircuitState.OPEN
                logger.warning(
                    "Circuit %s: %d consecutive failures, opening circuit",
                    self.name, self.failure_count,
                )

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "state": self.state.value,
                "failure_count": self.failure_count,
                "failure_threshold": self.failure_threshold,
            }
