"""Circuit breaker guarding the primary AI provider."""

import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """Simple circuit breaker for provider calls.

    With the default threshold of one, a single failed call opens the circuit
    and requests go straight to the fallback chain until ``recovery_timeout``
    has passed. After that a single caller is let through as a half-open probe;
    the rest keep falling back until it reports success or failure. A probe
    that never reports is given up on after another ``recovery_timeout``.
    """

    def __init__(
        self,
        failure_threshold: int = 1,
        recovery_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.clock = clock
        self.failures = 0
        self.last_failure_time: float | None = None
        self.state = "closed"  # closed, open, half-open
        self.probe_started: float | None = None

    def can_execute(self) -> bool:
        if self.state == "closed":
            return True

        if self.state == "open":
            if self.clock() - (self.last_failure_time or 0) >= self.recovery_timeout:
                self.state = "half-open"
                self.probe_started = self.clock()
                return True
            return False

        # half-open: one probe at a time
        if self.probe_started is not None and self.clock() - self.probe_started < self.recovery_timeout:
            return False
        self.probe_started = self.clock()
        return True

    def record_success(self) -> None:
        self.failures = 0
        self.probe_started = None
        self.state = "closed"

    def record_failure(self) -> None:
        self.failures += 1
        self.last_failure_time = self.clock()
        self.probe_started = None

        if self.state == "half-open" or self.failures >= self.failure_threshold:
            if self.state != "open":
                logger.warning(f"Circuit breaker opened after {self.failures} failure(s)")
            self.state = "open"
