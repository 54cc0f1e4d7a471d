"""Tests for retry strategies."""

from jobspine.core.config import JobSpineSettings
from jobspine.jobs.retry import (
    ConstantBackoff,
    ExponentialBackoff,
    NoRetry,
    retry_strategy_from_settings,
)


class TestExponentialBackoff:
    def test_delays_double(self):
        strategy = ExponentialBackoff(max_retries=5, base_delay=1.0, jitter=False)
        assert [strategy.next_delay(n) for n in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_delay_capped(self):
        strategy = ExponentialBackoff(base_delay=10.0, max_delay=25.0, jitter=False)
        assert strategy.next_delay(5) == 25.0

    def test_jitter_stays_in_range(self):
        strategy = ExponentialBackoff(base_delay=10.0, jitter=True, jitter_range=0.1)
        for _ in range(50):
            assert 9.0 <= strategy.next_delay(0) <= 11.0

    def test_should_retry(self):
        strategy = ExponentialBackoff(max_retries=2)
        assert strategy.should_retry(0)
        assert strategy.should_retry(1)
        assert not strategy.should_retry(2)


class TestOtherStrategies:
    def test_constant(self):
        strategy = ConstantBackoff(max_retries=1, delay=7.0)
        assert strategy.next_delay(0) == strategy.next_delay(3) == 7.0
        assert strategy.should_retry(0)
        assert not strategy.should_retry(1)

    def test_no_retry(self):
        strategy = NoRetry()
        assert strategy.next_delay(0) == 0.0
        assert not strategy.should_retry(0, "boom")


class TestFromSettings:
    def test_single_run_disables_retries(self):
        settings = JobSpineSettings(_env_file=None, retry_max_attempts=1)
        assert isinstance(retry_strategy_from_settings(settings), NoRetry)

    def test_exponential(self):
        settings = JobSpineSettings(
            _env_file=None, retry_max_attempts=4, retry_base_delay_seconds=2.0, retry_max_delay_seconds=30.0
        )
        strategy = retry_strategy_from_settings(settings)
        assert isinstance(strategy, ExponentialBackoff)
        assert strategy.max_retries == 3
        assert strategy.base_delay == 2.0
        assert strategy.max_delay == 30.0
