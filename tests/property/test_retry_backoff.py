"""Property-based tests for retry decisions and schedule intervals"""

from datetime import datetime, timedelta, timezone

from hypothesis import given, strategies as st, settings

from applyflow.services.retry_policy import RetryPolicy
from applyflow.services.scheduler import cron_to_interval

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)

base_delays = st.floats(min_value=0.01, max_value=60, allow_nan=False)
max_delays = st.floats(min_value=0.01, max_value=3600, allow_nan=False)


class TestRetryBackoffProperties:
    """Property-based tests for RetryPolicy"""

    @given(base=base_delays, ceiling=max_delays, attempt=st.integers(min_value=0, max_value=200))
    @settings(max_examples=200)
    def test_backoff_never_exceeds_ceiling(self, base, ceiling, attempt):
        """Any attempt count yields a delay between zero and the ceiling"""
        delay = RetryPolicy(base, ceiling).backoff(attempt)

        assert 0 < delay <= ceiling

    @given(base=base_delays, ceiling=max_delays, attempt=st.integers(min_value=0, max_value=100))
    def test_backoff_is_non_decreasing(self, base, ceiling, attempt):
        policy = RetryPolicy(base, ceiling)

        assert policy.backoff(attempt) <= policy.backoff(attempt + 1)

    @given(
        attempt=st.integers(min_value=0, max_value=50),
        max_attempts=st.integers(min_value=1, max_value=50),
        retry=st.sampled_from([None, True, False]),
    )
    def test_attempt_count_always_advances_by_one(self, attempt, max_attempts, retry):
        decision = RetryPolicy(1.0, 30.0).decide(attempt, max_attempts, retry=retry, now=NOW)

        assert decision.attempt_count == attempt + 1

    @given(max_attempts=st.integers(min_value=1, max_value=30))
    def test_job_fails_exactly_at_max_attempts(self, max_attempts):
        """Repeated failures reschedule until the final permitted attempt"""
        policy = RetryPolicy(1.0, 30.0)
        attempt = 0
        retries = 0

        while True:
            decision = policy.decide(attempt, max_attempts, now=NOW)
            attempt = decision.attempt_count
            if not decision.retry:
                break
            retries += 1

        assert attempt == max_attempts
        assert retries == max_attempts - 1

    @given(
        attempt=st.integers(min_value=0, max_value=10),
        retry_delay=st.floats(min_value=0, max_value=600, allow_nan=False),
    )
    def test_handler_delay_overrides_backoff(self, attempt, retry_delay):
        decision = RetryPolicy(1.0, 30.0).decide(attempt, attempt + 5, retry_delay=retry_delay, now=NOW)

        assert decision.retry is True
        assert decision.available_at == NOW + timedelta(seconds=retry_delay)


class TestCronIntervalProperties:

    @given(step=st.integers(min_value=1, max_value=59))
    def test_minute_step(self, step):
        assert cron_to_interval(f"*/{step} * * * *") == step * 60

    @given(step=st.integers(min_value=1, max_value=23), minute=st.integers(min_value=0, max_value=59))
    def test_hour_step(self, step, minute):
        assert cron_to_interval(f"{minute} */{step} * * *") == step * 3600

    @given(minute=st.integers(min_value=0, max_value=59), hour=st.integers(min_value=0, max_value=23))
    def test_fixed_daily_time(self, minute, hour):
        assert cron_to_interval(f"{minute} {hour} * * *") == 24 * 3600

    @given(fields=st.lists(st.sampled_from(["*", "0", "5", "*/2"]), min_size=0, max_size=8))
    def test_wrong_field_count_is_rejected(self, fields):
        expression = " ".join(fields)
        if len(fields) == 5:
            assert cron_to_interval(expression) is not None
        else:
            assert cron_to_interval(expression) is None
