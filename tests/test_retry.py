import pytest

from alchemist.services.retry import RetryPolicy, run_with_retry


def flaky(failures, exc=ConnectionError):
    attempts = []

    def fn(attempt):
        attempts.append(attempt)
        if len(attempts) <= failures:
            raise exc("boom")
        return "ok"
    return fn, attempts


def test_returns_first_success():
    fn, attempts = flaky(0)
    assert run_with_retry(fn, RetryPolicy(), sleep=lambda s: None) == "ok"
    assert attempts == [1]


def test_retries_with_fixed_delay():
    fn, attempts = flaky(3)
    sleeps = []
    assert run_with_retry(fn, RetryPolicy(max_attempts=4, delay=0.5), sleep=sleeps.append) == "ok"
    assert attempts == [1, 2, 3, 4]
    assert sleeps == [0.5, 0.5, 0.5]


def test_reraises_last_error_when_exhausted():
    fn, attempts = flaky(5)
    with pytest.raises(ConnectionError):
        run_with_retry(fn, RetryPolicy(max_attempts=2, delay=0), sleep=lambda s: None)
    assert attempts == [1, 2]


def test_non_retryable_error_stops_immediately():
    fn, attempts = flaky(5, exc=PermissionError)
    policy = RetryPolicy(is_retryable=lambda e: not isinstance(e, PermissionError))
    with pytest.raises(PermissionError):
        run_with_retry(fn, policy, sleep=lambda s: None)
    assert attempts == [1]


@pytest.mark.parametrize("kwargs", [{"max_attempts": 0}, {"delay": -1}])
def test_policy_validation(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)
