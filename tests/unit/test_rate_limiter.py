from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from promptlens.analyze.llm.rate_limiter import RateLimiter, limiter_for
from promptlens.constants import DEFAULT_RATE_LIMITS

REAL_SLEEP = asyncio.sleep


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_defaults() -> None:
    assert DEFAULT_RATE_LIMITS == {"ollama": None, "anthropic": 50, "google": 50}


def test_rejects_non_positive_budget() -> None:
    with pytest.raises(ValueError):
        RateLimiter(0)


@pytest.mark.anyio
async def test_first_request_is_not_delayed() -> None:
    limiter = RateLimiter(60, clock=FakeClock())

    with patch("promptlens.analyze.llm.rate_limiter.asyncio.sleep", new=AsyncMock()) as sleep_mock:
        await limiter.acquire()

    sleep_mock.assert_not_awaited()


@pytest.mark.anyio
async def test_back_to_back_requests_are_spaced() -> None:
    clock = FakeClock()
    limiter = RateLimiter(30, clock=clock)  # 2 seconds apart

    with patch("promptlens.analyze.llm.rate_limiter.asyncio.sleep", new=AsyncMock()) as sleep_mock:
        await limiter.acquire()
        clock.now += 0.5
        await limiter.acquire()

    sleep_mock.assert_awaited_once_with(1.5)


@pytest.mark.anyio
async def test_no_wait_after_interval_elapsed() -> None:
    clock = FakeClock()
    limiter = RateLimiter(60, clock=clock)

    with patch("promptlens.analyze.llm.rate_limiter.asyncio.sleep", new=AsyncMock()) as sleep_mock:
        await limiter.acquire()
        clock.now += 5
        await limiter.acquire()

    sleep_mock.assert_not_awaited()


@pytest.mark.anyio
async def test_throttle_returns_operation_result_and_reset_clears_state() -> None:
    clock = FakeClock()
    limiter = RateLimiter(60, clock=clock)
    operation = AsyncMock(return_value="done")

    with patch("promptlens.analyze.llm.rate_limiter.asyncio.sleep", new=AsyncMock()) as sleep_mock:
        assert await limiter.throttle(operation) == "done"
        limiter.reset()
        assert await limiter.throttle(operation) == "done"

    assert operation.await_count == 2
    sleep_mock.assert_not_awaited()


def test_limiter_for_cloud_providers_only() -> None:
    assert limiter_for("ollama") is None
    assert limiter_for("openai") is None
    assert limiter_for("anthropic").requests_per_minute == 50
    assert limiter_for("google", 10).min_interval == 6.0


@pytest.mark.anyio
async def test_concurrent_callers_are_serialized() -> None:
    clock = FakeClock()
    limiter = RateLimiter(30, clock=clock)  # 2 seconds apart
    started = []

    async def fake_sleep(delay: float) -> None:
        clock.now += delay
        await REAL_SLEEP(0)

    async def operation() -> float:
        started.append(clock())
        await REAL_SLEEP(0)
        return clock()

    with patch("promptlens.analyze.llm.rate_limiter.asyncio.sleep", new=fake_sleep):
        await asyncio.gather(*(limiter.throttle(operation) for _ in range(4)))

    assert started == [100.0, 102.0, 104.0, 106.0]
    gaps = [later - earlier for earlier, later in zip(started, started[1:])]
    assert all(gap >= limiter.min_interval for gap in gaps)
