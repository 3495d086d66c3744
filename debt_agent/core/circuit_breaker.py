"""
Circuit breaker for the outbound message channel.
"""
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

import structlog

from debt_agent.core.exceptions import ChannelError

logger = structlog.get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject calls
    HALF_OPEN = "half_open"  # Testing if service recovered


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    failure_threshold: int = 5
    success_threshold: int = 2
    timeout: int = 60
    half_open_max_calls: int = 3


class CircuitBreaker:
    """Circuit breaker wrapping async calls to an external service."""

    def __init__(
        self,
        service_name: str = "Unknown Service",
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock

        self.failure_count = 0
        self.success_count = 0
        self.half_open_calls = 0
        self.last_failure_time: Optional[float] = None
        self.state = CircuitState.CLOSED
        self.total_calls = 0
        self.failed_calls = 0

    async def call_async(self, func: Callable, *args, **kwargs) -> Any:
        """Execute async function with circuit breaker protection."""
        if self.state == CircuitState.OPEN:
            if self._should_attempt_reset():
                self._transition_to_half_open()
            else:
                logger.warning(
                    "Circuit breaker rejecting call - OPEN state",
                    service=self.service_name,
                    failure_count=self.failure_count,
                )
                raise ChannelError(
                    f"Circuit breaker is OPEN for {self.service_name}",
                    retry_after=self.config.timeout,
                )

        if self.state == CircuitState.HALF_OPEN:
            if self.half_open_calls >= self.config.half_open_max_calls:
                raise ChannelError(
                    f"Circuit breaker half-open limit reached for {self.service_name}",
                    retry_after=self.config.timeout,
                )
            self.half_open_calls += 1

        self.total_calls += 1
        try:
            result = await func(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    def _should_attempt_reset(self) -> bool:
        """Check if enough time has passed to attempt circuit reset."""
        return (
            self.last_failure_time is not None
            and self._clock() - self.last_failure_time >= self.config.timeout
        )

    def _transition_to_half_open(self) -> None:
        self.state = CircuitState.HALF_OPEN
        self.half_open_calls = 0
        self.success_count = 0
        logger.info("Circuit breaker transitioning to half-open", service=self.service_name)

    def _on_success(self) -> None:
        if self.state == CircuitState.HALF_OPEN:
            self.success_count += 1
            if self.success_count >= self.config.success_threshold:
                self.state = CircuitState.CLOSED
                self.failure_count = 0
                self.success_count = 0
                self.half_open_calls = 0
                logger.info("Circuit breaker reset to closed", service=self.service_name)
        else:
            self.failure_count = 0

    def _on_failure(self) -> None:
        self.failed_calls += 1
        self.failure_count += 1
        self.last_failure_time = self._clock()

        if self.state == CircuitState.HALF_OPEN:
            # Any failure while probing reopens the circuit
            self.state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker reopened from half-open",
                service=self.service_name,
                failure_count=self.failure_count,
            )
        elif self.failure_count >= self.config.failure_threshold:
            self.state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                service=self.service_name,
                failure_count=self.failure_count,
                threshold=self.config.failure_threshold,
            )

    def get_status(self) -> Dict[str, Any]:
        """Get current circuit breaker status."""
        return {
            "service": self.service_name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "failure_threshold": self.config.failure_threshold,
            "is_available": self.state != CircuitState.OPEN,
            "total_calls": self.total_calls,
            "failed_calls": self.failed_calls,
        }

    def reset(self) -> None:
        """Reset circuit breaker to closed state."""
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.half_open_calls = 0
        self.last_failure_time = None
        logger.info("Circuit breaker manually reset", service=self.service_name)
