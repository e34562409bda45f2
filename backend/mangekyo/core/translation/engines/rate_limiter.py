"""Sliding-window rate limiter shared by all callers of one engine adapter."""

import asyncio
import logging
import time
from collections import deque
from typing import Deque, Optional, Tuple

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class RateLimitConfig(BaseModel):
    """Per-engine request and volume limits."""

    requests_per_minute: int = Field(default=60, gt=0)
    units_per_minute: Optional[int] = Field(
        default=None, gt=0, description="Characters or tokens per window, if limited"
    )
    window_seconds: float = Field(default=60.0, gt=0)


class RateLimiter:
    """Tracks requests and units in a sliding window.

    acquire() suspends the caller until the call fits in the window instead
    of failing. A single call larger than the unit budget is let through
    once the window is empty so it cannot wait forever.
    """

    def __init__(self, config: RateLimitConfig, name: str = "engine"):
        self.config = config
        self.name = name
        self._events: Deque[Tuple[float, int]] = deque()
        self._lock = asyncio.Lock()
        self.total_wait_seconds = 0.0

    def _prune(self, now: float) -> None:
        cutoff = now - self.config.window_seconds
        while self._events and self._events[0][0] <= cutoff:
            self._events.popleft()

    def _units_in_window(self) -> int:
        return sum(units for _, units in self._events)

    def _wait_time(self, now: float, units: int) -> float:
        """Seconds until a call of `units` fits, 0 if it fits now."""
        if not self._events:
            return 0.0

        over_requests = len(self._events) >= self.config.requests_per_minute
        limit = self.config.units_per_minute
        over_units = limit is not None and self._units_in_window() + units > limit

        if not over_requests and not over_units:
            return 0.0

        # Wait until enough of the oldest events leave the window
        if over_units and not over_requests:
            freed = 0
            needed = self._units_in_window() + units - limit
            for timestamp, event_units in self._events:
                freed += event_units
                if freed >= needed:
                    return max(timestamp + self.config.window_seconds - now, 0.0)
        return max(self._events[0][0] + self.config.window_seconds - now, 0.0)

    async def acquire(self, units: int = 1) -> float:
        """Reserve capacity for one call.

        Args:
            units: Characters or tokens the call will consume

        Returns:
            Seconds spent waiting
        """
        waited = 0.0
        while True:
            async with self._lock:
                now = time.monotonic()
                self._prune(now)
                wait = self._wait_time(now, units)
                if wait <= 0:
                    self._events.append((now, units))
                    self.total_wait_seconds += waited
                    return waited

            logger.info(f"[RateLimiter] {self.name}: window full, waiting {wait:.2f}s")
            await asyncio.sleep(wait)
            waited += wait

    def snapshot(self) -> dict:
        now = time.monotonic()
        self._prune(now)
        return {
            "requests_in_window": len(self._events),
            "units_in_window": self._units_in_window(),
            "requests_per_minute": self.config.requests_per_minute,
            "units_per_minute": self.config.units_per_minute,
        }
