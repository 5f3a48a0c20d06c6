"""Fixed-interval rate gate shared by all lookups of one job run."""

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class RateGateStats:
    """Running statistics of a rate gate."""

    permits_granted: int = 0
    total_delays: int = 0
    total_delay_time: float = 0.0
    average_delay: float = 0.0

    def update_metrics(self, delay_time: float) -> None:
        """Record one granted permit and the time spent waiting for it."""
        self.permits_granted += 1

        if delay_time > 0:
            self.total_delays += 1
            self.total_delay_time += delay_time
            self.average_delay = self.total_delay_time / self.total_delays


class RateGate:
    """Grants permits no faster than once every ``ceil(1000 / R)`` milliseconds.

    Waiters are served in arrival order: ``asyncio.Lock`` wakes its waiters
    FIFO and the lock is held across the timed sleep, so a later caller can
    never overtake an earlier one. There is no burst allowance.
    """

    def __init__(self, calls_per_second: float, delay_first: bool = False):
        """Initialize rate gate.

        Args:
            calls_per_second: Maximum permits per second
            delay_first: Enforce the interval before the very first permit too
        """
        if calls_per_second <= 0:
            raise ValueError("calls_per_second must be positive")

        self.calls_per_second = calls_per_second
        self.interval_ms = math.ceil(1000 / calls_per_second)
        self.interval = self.interval_ms / 1000
        self.delay_first = delay_first

        self._last_grant: float | None = None
        self._created_at = time.monotonic()
        self._lock = asyncio.Lock()
        self.stats = RateGateStats()

    async def acquire(self) -> None:
        """Wait until the next permit is due, then take it."""
        async with self._lock:
            if self._last_grant is not None:
                due = self._last_grant + self.interval
            elif self.delay_first:
                due = self._created_at + self.interval
            else:
                due = time.monotonic()

            started = time.monotonic()
            remaining = due - started
            if remaining > 0:
                logger.debug(f"Rate gate waiting {remaining:.3f}s")
            # The event loop may wake a timer marginally early
            while remaining > 0:
                await asyncio.sleep(remaining)
                remaining = due - time.monotonic()

            self._last_grant = time.monotonic()
            self.stats.update_metrics(max(0.0, self._last_grant - started) if due > started else 0.0)

    async def __aenter__(self) -> "RateGate":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        return None

    def get_stats(self) -> dict[str, Any]:
        """Get rate gate statistics."""
        return {
            "calls_per_second": self.calls_per_second,
            "interval_ms": self.interval_ms,
            "permits_granted": self.stats.permits_granted,
            "total_delays": self.stats.total_delays,
            "total_delay_time": self.stats.total_delay_time,
            "average_delay": self.stats.average_delay,
        }
