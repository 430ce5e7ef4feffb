"""Tests for failure classification and the retry policy."""

import json
import random

import httpx
import pytest

from devflow.daemon.error_handling import (
    OracleErrorKind, PermanentOracleError, RetryPolicy, TransientOracleError,
    classify_failure, to_oracle_error
)


@pytest.mark.parametrize("attempt,low,high", [
    (0, 1.0, 1.5),
    (1, 2.0, 2.5),
    (2, 4.0, 4.5),
])
def test_delay_windows(attempt, low, high):
    """Backoff doubles from one second and adds at most half a second of jitter."""
    for seed in range(50):
        policy = RetryPolicy(rng=random.Random(seed))
        delay = policy.calculate_delay(attempt)
        assert low <= delay < high


def test_delay_is_capped():
    policy = RetryPolicy(rng=random.Random(1))
    delay = policy.calculate_delay(10)
    assert 10.0 <= delay < 10.5


def test_invalid_attempt_budget():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


@pytest.mark.asyncio
async def test_transient_error_uses_full_budget(sleep):
    policy = RetryPolicy(sleep=sleep)
    calls = 0

    async def overloaded():
        nonlocal calls
        calls += 1
        raise TransientOracleError("503 model overloaded", status=503)

    with pytest.raises(TransientOracleError):
        await policy.execute(overloaded)

    assert calls == 3
    assert len(sleep.delays) == 2
    assert 1.0 <= sleep.delays[0] < 1.5
    assert 2.0 <= sleep.delays[1] < 2.5


@pytest.mark.asyncio
async def test_permanent_error_is_not_retried(sleep):
    policy = RetryPolicy(sleep=sleep)
    calls = 0

    async def bad_request():
        nonlocal calls
        calls += 1
        raise PermanentOracleError("invalid argument", status=400)

    with pytest.raises(PermanentOracleError):
        await policy.execute(bad_request)

    assert calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_recovers_after_transient_failure(sleep):
    policy = RetryPolicy(sleep=sleep)
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 2:
            raise TransientOracleError("quota exceeded")
        return "ok"

    assert await policy.execute(flaky) == "ok"
    assert len(attempts) == 2
    assert len(sleep.delays) == 1


@pytest.mark.asyncio
async def test_foreign_exceptions_are_wrapped(sleep):
    policy = RetryPolicy(sleep=sleep)

    async def times_out():
        raise httpx.ReadTimeout("read timed out")

    with pytest.raises(TransientOracleError) as exc_info:
        await policy.execute(times_out)

    assert isinstance(exc_info.value.__cause__, httpx.ReadTimeout)
    assert len(sleep.delays) == 2


@pytest.mark.parametrize("status,message,expected", [
    (503, "Service Unavailable", OracleErrorKind.TRANSIENT),
    (429, "Too Many Requests", OracleErrorKind.TRANSIENT),
    (None, "The model is overloaded. Please try again later.", OracleErrorKind.TRANSIENT),
    (None, "RESOURCE_EXHAUSTED: quota exceeded", OracleErrorKind.TRANSIENT),
    (None, "Resource exhausted", OracleErrorKind.TRANSIENT),
    (None, "Request timed out", OracleErrorKind.TRANSIENT),
    (500, "deadline exceeded", OracleErrorKind.TRANSIENT),
    (400, "API key not valid", OracleErrorKind.PERMANENT),
    (None, "schema mismatch", OracleErrorKind.PERMANENT),
    (None, "", OracleErrorKind.PERMANENT),
])
def test_classify_failure(status, message, expected):
    assert classify_failure(status, message) == expected


def test_to_oracle_error_mapping():
    assert isinstance(to_oracle_error(httpx.ConnectError("refused")), TransientOracleError)
    assert isinstance(
        to_oracle_error(json.JSONDecodeError("Expecting value", "", 0)),
        PermanentOracleError
    )
    assert isinstance(to_oracle_error(RuntimeError("503 upstream")), TransientOracleError)
    assert isinstance(to_oracle_error(RuntimeError("boom")), PermanentOracleError)

    original = TransientOracleError("overloaded")
    assert to_oracle_error(original) is original
