"""
Circuit Breaker for Notification Transports

Each delivery channel gets its own breaker. After a run of consecutive
failed sends the channel is OPEN and further sends are rejected without
touching the transport; a rejected send is recorded by the dispatcher as a
failed attempt and picked up again by the retry sweep.

States:
- CLOSED: sends pass through
- OPEN: sends rejected until timeout_seconds have elapsed
- HALF_OPEN: trial sends; success_threshold successes close the circuit,
  any failure reopens it
"""

import functools
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from threading import Lock
from typing import Any, Callable, Dict, Optional

from pump_copilot.exceptions import PumpCopilotError

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states"""

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker"""

    failure_threshold: int = 5  # Consecutive failures before opening
    success_threshold: int = 1  # Successes to close from half-open
    timeout_seconds: float = 60.0  # Time OPEN before a trial send
    excluded_exceptions: tuple = ()  # Exceptions that don't count as failures


@dataclass
class CircuitStats:
    """Counters for one circuit"""

    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    last_failure_time: Optional[datetime] = None
    last_success_time: Optional[datetime] = None
    consecutive_failures: int = 0
    consecutive_successes: int = 0


class CircuitBreakerOpenError(PumpCopilotError):
    """Raised when a call is rejected by an open circuit"""


class CircuitBreaker:
    """
    Usage:
        breaker = get_circuit_breaker("notify.EMAIL")
        delivered = breaker.execute(transport.send, channel, recipient, subject, body)
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.clock = clock
        self.state = CircuitState.CLOSED
        self.stats = CircuitStats()
        self._lock = Lock()
        self._last_state_change = clock()

    def __call__(self, func: Callable) -> Callable:
        """Decorator usage"""

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            return self.execute(func, *args, **kwargs)

        return wrapper

    def execute(self, func: Callable, *args, **kwargs) -> Any:
        """Run func under the breaker; raises CircuitBreakerOpenError when OPEN"""
        if not self.can_execute():
            with self._lock:
                self.stats.rejected_calls += 1
                failures = self.stats.consecutive_failures
            raise CircuitBreakerOpenError(
                f"Circuit breaker '{self.name}' is OPEN. Failures: {failures}"
            )

        with self._lock:
            self.stats.total_calls += 1

        try:
            result = func(*args, **kwargs)
        except self.config.excluded_exceptions:
            raise
        except Exception as e:
            self.record_failure(e)
            raise

        self.record_success()
        return result

    def can_execute(self) -> bool:
        with self._lock:
            if self.state == CircuitState.OPEN:
                elapsed = (self.clock() - self._last_state_change).total_seconds()
                if elapsed < self.config.timeout_seconds:
                    return False
                self._transition_to(CircuitState.HALF_OPEN)
            return True

    def record_success(self):
        with self._lock:
            self.stats.successful_calls += 1
            self.stats.consecutive_successes += 1
            self.stats.consecutive_failures = 0
            self.stats.last_success_time = self.clock()

            if (
                self.state == CircuitState.HALF_OPEN
                and self.stats.consecutive_successes >= self.config.success_threshold
            ):
                self._transition_to(CircuitState.CLOSED)

    def record_failure(self, exception: Optional[Exception] = None):
        """Count a failure; a returned False from a transport counts too"""
        with self._lock:
            self.stats.failed_calls += 1
            self.stats.consecutive_failures += 1
            self.stats.consecutive_successes = 0
            self.stats.last_failure_time = self.clock()

            if self.state == CircuitState.HALF_OPEN:
                logger.warning(f"Circuit '{self.name}' failed during recovery: {exception}")
                self._transition_to(CircuitState.OPEN)
            elif (
                self.state == CircuitState.CLOSED
                and self.stats.consecutive_failures >= self.config.failure_threshold
            ):
                logger.warning(
                    f"Circuit '{self.name}' opening after "
                    f"{self.stats.consecutive_failures} failures"
                )
                self._transition_to(CircuitState.OPEN)

    def _transition_to(self, new_state: CircuitState):
        # caller holds self._lock
        self.state = new_state
        self._last_state_change = self.clock()
        if new_state == CircuitState.HALF_OPEN:
            self.stats.consecutive_successes = 0
        logger.info(f"Circuit '{self.name}' -> {new_state.value}")

    def reset(self):
        with self._lock:
            self.state = CircuitState.CLOSED
            self.stats = CircuitStats()
            self._last_state_change = self.clock()
        logger.info(f"Circuit '{self.name}' manually reset")

    def get_status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "name": self.name,
                "state": self.state.value,
                "stats": {
                    "total_calls": self.stats.total_calls,
                    "successful_calls": self.stats.successful_calls,
                    "failed_calls": self.stats.failed_calls,
                    "rejected_calls": self.stats.rejected_calls,
                    "consecutive_failures": self.stats.consecutive_failures,
                },
                "last_failure": (
                    self.stats.last_failure_time.isoformat()
                    if self.stats.last_failure_time
                    else None
                ),
            }


# Global registry
_circuit_breakers: Dict[str, CircuitBreaker] = {}
_registry_lock = Lock()


def get_circuit_breaker(
    name: str,
    config: Optional[CircuitBreakerConfig] = None,
    clock: Callable[[], datetime] = datetime.now,
) -> CircuitBreaker:
    """Get or create a circuit breaker by name"""
    with _registry_lock:
        if name not in _circuit_breakers:
            _circuit_breakers[name] = CircuitBreaker(name, config, clock)
        return _circuit_breakers[name]


def get_all_circuit_status() -> Dict[str, Dict[str, Any]]:
    with _registry_lock:
        breakers = list(_circuit_breakers.values())
    return {b.name: b.get_status() for b in breakers}


def reset_circuit_breakers():
    """Drop every registered breaker"""
    with _registry_lock:
        _circuit_breakers.clear()
