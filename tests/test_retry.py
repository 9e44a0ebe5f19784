from __future__ import annotations

import pytest
import requests

from conftest import FakeResponse
from core.note_converter.config import RetryConfig
from core.note_converter.retry import RetryPolicy, is_retryable


def flaky(failures: list[BaseException], result: str = "ok"):
    calls = []

    def _call() -> str:
        calls.append(1)
        if failures:
            raise failures.pop(0)
        return result

    return _call, calls


def test_retries_transient_errors_with_backoff():
    sleeps: list[float] = []
    policy = RetryPolicy(max_attempts=3, backoff_s=1.0, multiplier=2.0, sleep=sleeps.append)
    func, calls = flaky([requests.ConnectionError("down"), requests.Timeout("slow")])
    assert policy.call(func) == "ok"
    assert len(calls) == 3
    assert sleeps == [1.0, 2.0]


def test_non_retryable_errors_propagate_immediately():
    policy = RetryPolicy(sleep=lambda _: None)
    func, calls = flaky([ValueError("bad input")])
    with pytest.raises(ValueError):
        policy.call(func)
    assert len(calls) == 1


def test_gives_up_after_max_attempts():
    policy = RetryPolicy(max_attempts=2, sleep=lambda _: None)
    func, calls = flaky([requests.ConnectionError("a"), requests.ConnectionError("b")])
    with pytest.raises(requests.ConnectionError):
        policy.call(func)
    assert len(calls) == 2


@pytest.mark.parametrize(("status", "expected"), [(404, False), (401, False), (429, True), (503, True)])
def test_http_status_retryability(status, expected):
    error = requests.HTTPError("failed", response=FakeResponse(status))
    assert is_retryable(error) is expected


def test_policy_from_config_clamps_values():
    policy = RetryPolicy.from_config(RetryConfig(max_attempts=0, backoff_s=-1, multiplier=0.5))
    assert policy.max_attempts == 1
    assert policy.backoff_s == 0.0
    assert policy.multiplier == 1.0
