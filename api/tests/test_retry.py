from __future__ import annotations

import asyncio

import pytest

from app.core.retry import RetryPolicy, call_with_retry


class FlakyOperation:
    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError(f"attempt {self.calls} failed")
        return "ok"


def test_compute_delay_grows_exponentially_and_caps() -> None:
    policy = RetryPolicy(base_seconds=0.5, max_seconds=4.0, jitter_ratio=0.0)

    assert policy.compute_delay_seconds(attempt=1) == 0.5
    assert policy.compute_delay_seconds(attempt=2) == 1.0
    assert policy.compute_delay_seconds(attempt=3) == 2.0
    assert policy.compute_delay_seconds(attempt=10) == 4.0


def test_compute_delay_jitter_stays_within_bounds() -> None:
    policy = RetryPolicy(base_seconds=1.0, max_seconds=10.0, jitter_ratio=0.25)
    for _ in range(50):
        delay = policy.compute_delay_seconds(attempt=2)
        assert 2.0 <= delay <= 2.5


def test_zero_base_disables_backoff() -> None:
    assert RetryPolicy(base_seconds=0.0).compute_delay_seconds(attempt=3) == 0.0


def test_call_with_retry_recovers_after_transient_failures() -> None:
    operation = FlakyOperation(failures=2)
    sleeps: list[float] = []

    async def fake_sleep(delay: float) -> None:
        sleeps.append(delay)

    result = asyncio.run(
        call_with_retry(
            operation,
            policy=RetryPolicy(max_attempts=3, base_seconds=0.5, jitter_ratio=0.0),
            retry_on=(ConnectionError,),
            description="role lookup",
            sleep=fake_sleep,
        )
    )

    assert result == "ok"
    assert operation.calls == 3
    assert sleeps == [0.5, 1.0]


def test_call_with_retry_reraises_after_last_attempt() -> None:
    operation = FlakyOperation(failures=5)

    async def fake_sleep(_: float) -> None:
        return None

    with pytest.raises(ConnectionError, match="attempt 3"):
        asyncio.run(
            call_with_retry(
                operation,
                policy=RetryPolicy(max_attempts=3),
                retry_on=(ConnectionError,),
                description="role lookup",
                sleep=fake_sleep,
            )
        )
    assert operation.calls == 3


def test_call_with_retry_does_not_retry_other_errors() -> None:
    calls = 0

    async def broken() -> None:
        nonlocal calls
        calls += 1
        raise ValueError("bad payload")

    with pytest.raises(ValueError):
        asyncio.run(
            call_with_retry(broken, policy=RetryPolicy(max_attempts=3), retry_on=(ConnectionError,), description="x")
        )
    assert calls == 1
