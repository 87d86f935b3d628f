"""
Circuit breaker for upstream pricing and billing calls.
Stops hammering the retail price list or the billing aggregator while they are failing.
"""
from enum import Enum
from datetime import datetime, timezone
import logging
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


FAILURE_THRESHOLD = 3  # consecutive failures before tripping
OPEN_STATE_DURATION = 60  # seconds before a trial call is let through
HALF_OPEN_MAX_REQUESTS = 1


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerError(Exception):
    """Raised when a call is rejected because the circuit is open."""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CircuitBreaker:
    """
    Per-upstream circuit breaker.

    CLOSED passes every call. After ``failure_threshold`` consecutive failures
    the breaker OPENs and rejects calls for ``open_duration`` seconds, then
    moves to HALF_OPEN and admits ``half_open_max_requests`` trial calls.
    A trial success closes the circuit again, a trial failure re-opens it.
    """

    def __init__(
        self,
        service_name: str,
        failure_threshold: int = FAILURE_THRESHOLD,
        open_duration: int = OPEN_STATE_DURATION,
        half_open_max_requests: int = HALF_OPEN_MAX_REQUESTS,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize circuit breaker.

        Args:
            service_name: Upstream name used in log lines (e.g. "azure_retail_prices")
            failure_threshold: Consecutive failures before opening
            open_duration: Seconds to stay OPEN before allowing a trial call
            half_open_max_requests: Trial calls admitted while HALF_OPEN
            clock: Time source, injectable for tests
        """
        self.service_name = service_name
        self.failure_threshold = failure_threshold
        self.open_duration = open_duration
        self.half_open_max_requests = half_open_max_requests
        self._clock = clock or _utcnow

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.last_failure_time: Optional[datetime] = None
        self.opened_at: Optional[datetime] = None
        self.half_open_requests = 0

    def _transition(self, new_state: CircuitState, reason: str) -> None:
        logger.warning(
            f"Circuit breaker for {self.service_name}: "
            f"{self.state.name} -> {new_state.name} ({reason})"
        )
        self.state = new_state

    def allow_request(self) -> bool:
        """
        Check whether the next upstream call may proceed.

        Returns:
            True if the call should be made, False if it must be skipped
        """
        if self.state == CircuitState.OPEN:
            elapsed = (self._clock() - self.opened_at).total_seconds() if self.opened_at else 0
            if elapsed < self.open_duration:
                return False
            self._transition(CircuitState.HALF_OPEN, "testing recovery")
            self.half_open_requests = 0

        if self.state == CircuitState.HALF_OPEN:
            if self.half_open_requests >= self.half_open_max_requests:
                return False
            self.half_open_requests += 1

        return True

    def record_success(self) -> None:
        """Record a successful upstream call."""
        if self.state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.CLOSED, "service recovered")
            self.opened_at = None
            self.half_open_requests = 0
        self.failure_count = 0

    def record_failure(self) -> None:
        """Record a failed upstream call, opening the circuit when the threshold is hit."""
        now = self._clock()
        self.failure_count += 1
        self.last_failure_time = now

        if self.state == CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN, "service still failing")
            self.opened_at = now
            self.half_open_requests = 0
        elif self.state == CircuitState.CLOSED and self.failure_count >= self.failure_threshold:
            self._transition(CircuitState.OPEN, f"{self.failure_count} consecutive failures")
            self.opened_at = now

    def reset(self) -> None:
        """Force the breaker back to CLOSED."""
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.opened_at = None
        self.half_open_requests = 0

    def current_state(self) -> CircuitState:
        """Get current circuit state."""
        return self.state


# One breaker per upstream service
_circuit_breakers: Dict[str, CircuitBreaker] = {}


def get_circuit_breaker(service_name: str) -> CircuitBreaker:
    """
    Get or create the circuit breaker for an upstream service.

    Args:
        service_name: Name of the upstream service

    Returns:
        Shared CircuitBreaker instance for that service
    """
    if service_name not in _circuit_breakers:
        _circuit_breakers[service_name] = CircuitBreaker(service_name)
    return _circuit_breakers[service_name]


def reset_circuit_breakers() -> None:
    """Reset every registered breaker to CLOSED."""
    for breaker in _circuit_breakers.values():
        breaker.reset()
