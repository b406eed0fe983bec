from unittest.mock import Mock, call

import pytest

from ado_sync.config import RetryConfig
from ado_sync.errors import (
    AdoApiError,
    AdoConcurrencyError,
    AdoNetworkError,
    AdoRateLimitError,
    AdoTimeoutError,
)
from ado_sync.retry import RetryManager


@pytest.fixture
def sleep():
    return Mock()


@pytest.fixture
def manager(sleep):
    config = RetryConfig(max_retries=2, initial_delay=1.0, max_delay=30.0, jitter=False)
    return RetryManager(config, sleep=sleep)


class TestRetryOnFailure:
    def test_success_needs_no_retry(self, manager, sleep):
        func = Mock(return_value="ok")

        assert manager.retry_on_failure(func)() == "ok"
        sleep.assert_not_called()

    def test_retries_network_errors_with_backoff(self, manager, sleep):
        func = Mock(side_effect=[AdoNetworkError("boom"), AdoTimeoutError("slow"), "ok"])

        assert manager.retry_on_failure(func)() == "ok"
        assert func.call_count == 3
        assert sleep.call_args_list == [call(1.0), call(2.0)]

    def test_gives_up_after_max_retries(self, manager):
        func = Mock(side_effect=AdoNetworkError("down", status_code=503))

        with pytest.raises(AdoNetworkError):
            manager.retry_on_failure(func)()

        assert func.call_count == 3

    @pytest.mark.parametrize(
        "error",
        [
            AdoApiError("bad request", status_code=400),
            AdoConcurrencyError("rev mismatch", status_code=412),
            AdoRateLimitError("throttled", retry_after=10),
            ValueError("not an API error"),
        ],
    )
    def test_other_errors_propagate_immediately(self, manager, sleep, error):
        func = Mock(side_effect=error)

        with pytest.raises(type(error)):
            manager.retry_on_failure(func)()

        assert func.call_count == 1
        sleep.assert_not_called()


class TestDelay:
    def test_delay_is_capped(self, sleep):
        manager = RetryManager(
            RetryConfig(initial_delay=10.0, max_delay=15.0, backoff_multiplier=2.0, jitter=False),
            sleep=sleep,
        )

        assert manager._calculate_delay(0) == 10.0
        assert manager._calculate_delay(3) == 15.0

    def test_jitter_adds_up_to_thirty_percent(self, sleep):
        manager = RetryManager(RetryConfig(initial_delay=1.0, jitter=True), sleep=sleep)

        delay = manager._calculate_delay(0)

        assert 1.1 <= delay <= 1.3, f"Expected jittered delay in [1.1, 1.3], got {delay}"
