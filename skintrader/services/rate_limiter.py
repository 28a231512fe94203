"""
Rate Limiting Service for marketplace API calls.

Each request category has its own fixed-capacity window of recent call
timestamps. A caller waits until the oldest call in a full window is more
than one second old.
"""

import asyncio
import time
from collections import deque
from typing import Any, Deque, Dict, Mapping

from skintrader.utils.logging import get_logger

logger = get_logger(__name__)

WINDOW_SECONDS = 1.0


class RateLimiter:
    """
    Sliding-window admission control per request category.

    Categories are independent; calls within one category are serialized by
    that category's lock so the window never over-admits.
    """

    def __init__(self, capacities: Mapping[str, int], clock=time.monotonic):
        """
        Initialize rate limiter.

        Args:
            capacities: Maximum requests per second for each category
            clock: Monotonic time source
        """
        for category, capacity in capacities.items():
            if capacity <= 0:
                raise ValueError(f"Capacity for '{category}' must be positive, got {capacity}")

        self.capacities: Dict[str, int] = dict(capacities)
        self._clock = clock
        self._windows: Dict[str, Deque[float]] = {
            category: deque(maxlen=capacity) for category, capacity in self.capacities.items()
        }
        self._locks: Dict[str, asyncio.Lock] = {
            category: asyncio.Lock() for category in self.capacities
        }
        self.total_requests = 0
        self.total_delays = 0.0

    async def acquire(self, category: str) -> float:
        """
        Wait until a request of this category may be issued, then record it.

        Args:
            category: Request category

        Returns:
            Seconds spent waiting
        """
        if category not in self._windows:
            raise KeyError(f"Unknown rate limit category: {category}")

        window = self._windows[category]
        async with self._locks[category]:
            delay = 0.0
            if len(window) == window.maxlen:
                delay = max(0.0, window[0] + WINDOW_SECONDS - self._clock())
                if delay > 0:
                    logger.debug("Rate limit reached", category=category, delay=round(delay, 3))
                    await asyncio.sleep(delay)

            # deque(maxlen) evicts the oldest entry on append
            window.append(self._clock())
            self.total_requests += 1
            self.total_delays += delay
            return delay

    def get_stats(self) -> Dict[str, Any]:
        """Get rate limiting statistics."""
        now = self._clock()
        categories = {}
        for category, window in self._windows.items():
            recent = sum(1 for ts in window if now - ts < WINDOW_SECONDS)
            categories[category] = {
                "capacity": self.capacities[category],
                "recent_requests": recent,
                "utilization": recent / self.capacities[category],
            }

        return {
            "total_requests": self.total_requests,
            "total_delays": self.total_delays,
            "categories": categories,
        }
