"""Client-side request throttling for the Azure DevOps API."""

import logging
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Sliding-window request counter.

    Azure DevOps throttles per identity, so the limiter pauses before the
    window fills instead of waiting for the server to answer 429. Once
    ``threshold`` of ``max_requests`` have been issued inside the current
    window, the next call sleeps until the window ends and starts a new one.
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 60.0,
        threshold: float = 0.8,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.threshold = threshold
        self._clock = clock
        self._sleep = sleep
        self._request_count = 0
        self._window_start = clock()

    @property
    def request_count(self) -> int:
        return self._request_count

    @property
    def window_start(self) -> float:
        return self._window_start

    def _reset(self):
        self._request_count = 0
        self._window_start = self._clock()

    def throttle(self) -> float:
        """
        Account for one request, sleeping first if the window is nearly full.

        Returns:
            float: Seconds slept (0.0 when no pause was needed)
        """
        elapsed = self._clock() - self._window_start
        if elapsed >= self.window_seconds:
            self._reset()
            elapsed = 0.0

        waited = 0.0
        if self._request_count >= self.max_requests * self.threshold:
            waited = max(self.window_seconds - elapsed, 0.0)
            if waited > 0:
                logger.warning(
                    f"Rate limit approaching ({self._request_count}/{self.max_requests}), "
                    f"waiting {waited:.1f}s"
                )
                self._sleep(waited)
            self._reset()

        self._request_count += 1
        return waited

    def handle_retry_after(self, seconds: float):
        """Sleep for a server-provided Retry-After interval and start a new window."""
        logger.warning(f"Rate limited by Azure DevOps, waiting {seconds}s")
        self._sleep(seconds)
        self._reset()
