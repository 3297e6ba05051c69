from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from pr_insights.errors import RateLimitedError
from pr_insights.rate_limiter import RateLimiter, RateLimitInfo


def _headers(remaining: int, reset_at: datetime, resource: str = "core") -> dict[str, str]:
    return {
        "X-RateLimit-Limit": "5000",
        "X-RateLimit-Remaining": str(remaining),
        "X-RateLimit-Reset": str(int(reset_at.timestamp())),
        "X-RateLimit-Resource": resource,
    }


def test_rate_limit_info_from_headers():
    reset_at = datetime(2024, 6, 15, 13, tzinfo=timezone.utc)

    info = RateLimitInfo.from_headers(_headers(42, reset_at, "search"))

    assert info == RateLimitInfo(resource="search", limit=5000, remaining=42, reset_at=reset_at)
    assert RateLimitInfo.from_headers({}) is None


def test_rate_limiter_tracks_remaining_per_bucket():
    limiter = RateLimiter()
    reset_at = datetime.now(timezone.utc) + timedelta(minutes=5)

    async def scenario() -> tuple[int | None, int | None]:
        await limiter.record(_headers(4000, reset_at))
        await limiter.record(_headers(25, reset_at, "search"))
        await limiter.acquire()
        return await limiter.remaining(), await limiter.remaining("search")

    assert asyncio.run(scenario()) == (4000, 25)


def test_rate_limiter_fails_fast_when_exhausted():
    limiter = RateLimiter()
    reset_at = datetime.now(timezone.utc) + timedelta(seconds=30)

    async def scenario() -> None:
        await limiter.record(_headers(0, reset_at))
        await limiter.acquire("search")
        with pytest.raises(RateLimitedError) as exc:
            await limiter.acquire()
        assert int(exc.value.reset_at.timestamp()) == int(reset_at.timestamp())

    asyncio.run(scenario())


def test_rate_limiter_forgets_bucket_after_reset_time():
    now = datetime(2024, 6, 15, 12, tzinfo=timezone.utc)
    clock = [now]
    limiter = RateLimiter(clock=lambda: clock[0])

    async def scenario() -> int | None:
        await limiter.record(_headers(0, now + timedelta(seconds=10)))
        clock[0] = now + timedelta(seconds=11)
        await limiter.acquire()
        return await limiter.remaining()

    assert asyncio.run(scenario()) is None


def test_rate_limiter_warns_when_budget_low(caplog):
    limiter = RateLimiter(low_watermark=0.1)
    reset_at = datetime.now(timezone.utc) + timedelta(minutes=5)

    with caplog.at_level("WARNING"):
        asyncio.run(limiter.record(_headers(100, reset_at)))

    assert "rate limit low" in caplog.text


def test_rate_limiter_reset_clears_state():
    limiter = RateLimiter()
    reset_at = datetime.now(timezone.utc) + timedelta(minutes=5)

    async def scenario() -> int | None:
        await limiter.record(_headers(5, reset_at))
        await limiter.reset()
        return await limiter.remaining()

    assert asyncio.run(scenario()) is None
