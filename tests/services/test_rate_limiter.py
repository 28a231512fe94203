"""
Unit tests for the sliding-window rate limiter.
"""

import asyncio
from unittest.mock import patch

import pytest

from skintrader.services.rate_limiter import RateLimiter


class FakeClock:
    """Monotonic clock advanced only by the patched sleep."""

    def __init__(self, start: float = 100.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class TestRateLimiter:
    """Test cases for RateLimiter."""

    def setup_method(self):
        self.clock = FakeClock()
        self.limiter = RateLimiter({"global": 3, "market": 1}, clock=self.clock)

    def test_rejects_non_positive_capacity(self):
        with pytest.raises(ValueError):
            RateLimiter({"global": 0})

    @pytest.mark.asyncio
    async def test_unknown_category_raises(self):
        with pytest.raises(KeyError):
            await self.limiter.acquire("fee")

    @pytest.mark.asyncio
    async def test_admits_up_to_capacity_without_waiting(self):
        with patch("skintrader.services.rate_limiter.asyncio.sleep", self.clock.sleep):
            delays = [await self.limiter.acquire("global") for _ in range(3)]

        assert delays == [0.0, 0.0, 0.0]
        assert self.clock.sleeps == []

    @pytest.mark.asyncio
    async def test_waits_until_oldest_call_leaves_window(self):
        with patch("skintrader.services.rate_limiter.asyncio.sleep", self.clock.sleep):
            for _ in range(3):
                await self.limiter.acquire("global")
                self.clock.now += 0.1

            delay = await self.limiter.acquire("global")

        # Oldest call at t=100.0, now t=100.3
        assert delay == pytest.approx(0.7)
        assert self.clock.now == pytest.approx(101.0)

    @pytest.mark.asyncio
    async def test_never_more_than_capacity_per_second(self):
        """Any one-second span holds at most `capacity` admissions."""
        admitted = []
        with patch("skintrader.services.rate_limiter.asyncio.sleep", self.clock.sleep):
            for _ in range(12):
                await self.limiter.acquire("global")
                admitted.append(self.clock.now)
                self.clock.now += 0.05

        for i, start in enumerate(admitted):
            in_window = [t for t in admitted[i:] if t - start < 1.0 - 1e-9]
            assert len(in_window) <= 3

    @pytest.mark.asyncio
    async def test_categories_are_independent(self):
        with patch("skintrader.services.rate_limiter.asyncio.sleep", self.clock.sleep):
            await self.limiter.acquire("market")
            for _ in range(3):
                assert await self.limiter.acquire("global") == 0.0

            # market has capacity 1 and is full
            assert await self.limiter.acquire("market") == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_concurrent_callers_are_serialized(self):
        with patch("skintrader.services.rate_limiter.asyncio.sleep", self.clock.sleep):
            delays = await asyncio.gather(*(self.limiter.acquire("market") for _ in range(3)))

        assert sorted(delays) == pytest.approx([0.0, 1.0, 1.0])
        assert self.limiter.total_requests == 3

    @pytest.mark.asyncio
    async def test_get_stats(self):
        with patch("skintrader.services.rate_limiter.asyncio.sleep", self.clock.sleep):
            await self.limiter.acquire("global")
            await self.limiter.acquire("global")

        stats = self.limiter.get_stats()
        assert stats["total_requests"] == 2
        assert stats["categories"]["global"]["recent_requests"] == 2
        assert stats["categories"]["global"]["capacity"] == 3
        assert stats["categories"]["market"]["utilization"] == 0.0

    @pytest.mark.asyncio
    async def test_sixth_call_waits_for_first_to_expire(self):
        limiter = RateLimiter({"global": 5}, clock=self.clock)
        first = self.clock.now

        with patch("skintrader.services.rate_limiter.asyncio.sleep", self.clock.sleep):
            delays = [await limiter.acquire("global") for _ in range(5)]
            self.clock.now += 0.25
            sixth = await limiter.acquire("global")

        assert delays == [0.0] * 5
        assert sixth == pytest.approx(0.75)
        assert self.clock.now == pytest.approx(first + 1.0)
