"""
Retry policy tests.

Run with: pytest tests/test_resilience.py -v
"""

import pytest

from xchain_agents.errors import CheckpointFetchError
from xchain_agents.resilience import BackoffStrategy, RetryExhaustedError, RetryPolicy


def _no_sleep(seconds):
    pass


class TestRetryPolicy:
    """Retries, backoff and metrics."""

    def test_success_on_first_attempt(self):
        policy = RetryPolicy(sleep=_no_sleep)
        assert policy.execute(lambda: 42) == 42
        assert policy.metrics.total_attempts == 1
        assert policy.metrics.successful_attempts == 1

    def test_retries_until_success(self):
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise CheckpointFetchError("s3://bucket/checkpoint_0.json")
            return "ok"

        delays = []
        policy = RetryPolicy(
            max_attempts=3,
            retryable_exceptions=(CheckpointFetchError,),
            on_retry=lambda attempt, exc, delay: delays.append(delay),
            sleep=_no_sleep,
        )
        assert policy.execute(flaky) == "ok"
        assert len(attempts) == 3
        assert len(delays) == 2

    def test_exhaustion_chains_last_exception(self):
        failure = CheckpointFetchError("s3://bucket")

        def always_fails():
            raise failure

        policy = RetryPolicy(max_attempts=2, sleep=_no_sleep)
        with pytest.raises(RetryExhaustedError) as exc_info:
            policy.execute(always_fails)
        assert exc_info.value.attempts == 2
        assert exc_info.value.__cause__ is failure
        assert policy.metrics.retries_exhausted == 1

    def test_non_retryable_propagates_immediately(self):
        calls = []

        def parse_error():
            calls.append(1)
            raise ValueError("bad json")

        policy = RetryPolicy(
            max_attempts=5,
            retryable_exceptions=(CheckpointFetchError,),
            sleep=_no_sleep,
        )
        with pytest.raises(ValueError):
            policy.execute(parse_error)
        assert len(calls) == 1

    def test_explicit_non_retryable_wins(self):
        policy = RetryPolicy(
            max_attempts=5,
            retryable_exceptions=(Exception,),
            non_retryable_exceptions=(KeyError,),
            sleep=_no_sleep,
        )
        with pytest.raises(KeyError):
            policy.execute(lambda: {}["missing"])
        assert policy.metrics.total_attempts == 1

    @pytest.mark.parametrize("strategy,expected", [
        (BackoffStrategy.FIXED, [1.0, 1.0, 1.0]),
        (BackoffStrategy.LINEAR, [1.0, 2.0, 3.0]),
        (BackoffStrategy.EXPONENTIAL, [1.0, 2.0, 4.0]),
    ])
    def test_backoff_strategies(self, strategy, expected):
        policy = RetryPolicy(base_delay_seconds=1.0, backoff_strategy=strategy)
        assert [policy._calculate_delay(n) for n in (1, 2, 3)] == expected

    def test_jitter_stays_within_bounds(self):
        policy = RetryPolicy(base_delay_seconds=1.0, jitter_factor=0.5)
        for _ in range(20):
            assert 2.0 <= policy._calculate_delay(2) <= 3.0

    def test_delay_is_capped(self):
        policy = RetryPolicy(
            base_delay_seconds=10.0,
            max_delay_seconds=15.0,
            backoff_strategy=BackoffStrategy.EXPONENTIAL,
        )
        assert policy._calculate_delay(5) == 15.0

    def test_decorator(self):
        calls = []
        policy = RetryPolicy(max_attempts=2, sleep=_no_sleep)

        @policy
        def read(index):
            calls.append(index)
            if len(calls) == 1:
                raise ConnectionError("reset")
            return index * 2

        assert read(4) == 8
        assert calls == [4, 4]

    def test_invalid_max_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
