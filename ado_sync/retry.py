"""Retry of transient Azure DevOps failures with exponential backoff."""

import logging
import random
import time
from collections.abc import Callable
from functools import wraps
from typing import Any

from opentelemetry import trace

from .config import RetryConfig
from .errors import AdoApiError, AdoNetworkError, AdoTimeoutError

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class RetryManager:
    """
    Retries calls that failed with a transient error.

    Connection failures, timeouts and 5xx responses (surfaced by the client as
    ``AdoNetworkError`` / ``AdoTimeoutError``) are retried up to
    ``config.max_retries`` times. Everything else, including 4xx API errors
    and exhausted rate limits, propagates immediately.
    """

    def __init__(self, config: RetryConfig, sleep: Callable[[float], None] = time.sleep):
        """
        Initialize retry manager with configuration.

        Args:
            config: Retry configuration settings
            sleep: Function used to wait between attempts
        """
        self.config = config
        self._sleep = sleep

    def _calculate_delay(self, attempt: int) -> float:
        """
        Calculate delay for next retry attempt.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            float: Delay in seconds
        """
        base_delay = min(
            self.config.initial_delay * (self.config.backoff_multiplier**attempt),
            self.config.max_delay,
        )

        if self.config.jitter:
            base_delay += random.uniform(0.1, 0.3) * base_delay

        return base_delay

    def _should_retry(self, exception: Exception, attempt: int) -> bool:
        """Return True when ``exception`` is transient and attempts remain."""
        if attempt >= self.config.max_retries:
            return False

        if isinstance(exception, AdoApiError):
            return False

        return isinstance(exception, (AdoNetworkError, AdoTimeoutError))

    def retry_on_failure(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """
        Decorator that adds retry logic to a function.

        Args:
            func: Function to wrap with retry logic

        Returns:
            Callable: Wrapped function with retry logic
        """

        @wraps(func)
        def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    with tracer.start_as_current_span("retry_attempt") as span:
                        span.set_attribute("retry.attempt", attempt)
                        span.set_attribute("retry.max_retries", self.config.max_retries)
                        result = func(*args, **kwargs)
                        if attempt > 0:
                            logger.info(f"Request succeeded after {attempt} retries")
                        return result
                except Exception as e:
                    if not self._should_retry(e, attempt):
                        if attempt > 0:
                            logger.error(f"All {attempt + 1} attempts failed: {e}")
                        raise

                    delay = self._calculate_delay(attempt)
                    logger.warning(
                        f"Attempt {attempt + 1} failed: {e}. Retrying in {delay:.2f} seconds..."
                    )
                    self._sleep(delay)
                    attempt += 1

        return wrapper
