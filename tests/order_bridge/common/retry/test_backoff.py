"""Tests for the exponential backoff policy."""

import pytest

from config.config import RetryConfig
from order_bridge.common.retry.backoff import BackoffPolicy


class TestBackoffPolicy:

    def test_default_sequence(self):
        policy = BackoffPolicy()
        assert [policy.delay(n) for n in range(8)] == [1, 2, 4, 8, 16, 30, 30, 30]

    def test_delay_for_first_retry_is_base_delay(self):
        assert BackoffPolicy(base_delay=0.5).delay(0) == 0.5

    def test_delay_is_capped(self):
        policy = BackoffPolicy(base_delay=10.0, max_delay=15.0)
        assert policy.delay(1) == 15.0

    def test_exponent_is_capped(self):
        policy = BackoffPolicy(base_delay=1.0, max_delay=1000.0, max_exponent=3)
        assert policy.delay(3) == 8.0
        assert policy.delay(10) == 8.0

    def test_negative_attempt_counts_as_zero(self):
        assert BackoffPolicy().delay(-4) == 1.0

    def test_zero_base_delay(self):
        policy = BackoffPolicy(base_delay=0.0)
        assert policy.delay(5) == 0.0

    def test_delay_is_monotonic(self):
        policy = BackoffPolicy()
        delays = [policy.delay(n) for n in range(20)]
        assert delays == sorted(delays)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"base_delay": -1.0},
            {"max_delay": -1.0},
            {"max_exponent": -1},
        ],
    )
    def test_rejects_negative_settings(self, kwargs):
        with pytest.raises(ValueError):
            BackoffPolicy(**kwargs)

    def test_from_config(self):
        config = RetryConfig(base_delay_seconds=2, max_delay_seconds=60, max_exponent=4)

        policy = BackoffPolicy.from_config(config)

        assert policy == BackoffPolicy(base_delay=2.0, max_delay=60.0, max_exponent=4)
        assert policy.delay(4) == 32.0
