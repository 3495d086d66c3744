"""
Retry logic with exponential backoff using tenacity.
"""
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from debt_agent.core.exceptions import IntelligenceRateLimitError, IntelligenceTimeoutError

logger = structlog.get_logger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry logic."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    retryable_exceptions: tuple = (
        ConnectionError,
        TimeoutError,
    )


def create_async_retry_decorator(
    config: Optional[RetryConfig] = None,
    service_name: str = "Unknown Service",
) -> Callable:
    """Create a retry decorator for async functions."""

    config = config or RetryConfig()

    def _before_sleep(retry_state: RetryCallState) -> None:
        """Log retry attempts."""
        logger.warning(
            "Retrying failed async operation",
            service=service_name,
            attempt=retry_state.attempt_number,
            max_attempts=config.max_attempts,
            delay=retry_state.next_action.sleep,
            exception=str(retry_state.outcome.exception()),
        )

    return retry(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_random_exponential(
            multiplier=config.base_delay,
            max=config.max_delay,
        ),
        retry=retry_if_exception_type(config.retryable_exceptions),
        before_sleep=_before_sleep,
        reraise=True,
    )


def get_channel_retry_config(max_attempts: int = 3) -> RetryConfig:
    """
    Retry configuration for outbound message sends.

    Only connection failures are retried: the request never reached the
    gateway, so resending cannot deliver the message twice. Timeouts and
    HTTP errors are not retried because the gateway may already have sent.
    """
    return RetryConfig(
        max_attempts=max_attempts,
        base_delay=1.0,
        max_delay=10.0,
        retryable_exceptions=(httpx.ConnectError,),
    )


def get_intelligence_retry_config() -> RetryConfig:
    """Retry configuration for text generation and classification calls."""
    return RetryConfig(
        max_attempts=3,
        base_delay=1.0,
        max_delay=10.0,
        retryable_exceptions=(IntelligenceTimeoutError, IntelligenceRateLimitError),
    )
