"""
Adaptive client-side throttle for the generation API.

Generation requests are expensive on the server side, so the client starts
slow and halves its rate whenever it is told to back off with a 429.
"""

import asyncio
import logging
import time

log = logging.getLogger(__name__)


class AdaptiveRateLimiter:
    """
    Spaces out calls to at most `rate` per second, halving the rate on 429
    responses and creeping back up after a quiet period.
    """

    RECOVERY_QUIET_SECONDS = 300
    RECOVERY_FACTOR = 1.05

    def __init__(
        self,
        initial_calls_per_second: float = 2.0,
        max_calls_per_second: float = 4.0,
        min_calls_per_second: float = 0.25,
    ):
        """
        Args:
            initial_calls_per_second: The starting rate of calls per second.
            max_calls_per_second: The maximum rate to recover to.
            min_calls_per_second: The floor the rate is never halved below.
        """
        self._rate = initial_calls_per_second
        self._max_rate = max_calls_per_second
        self._min_rate = min_calls_per_second
        self._last_call_time = 0.0
        self._last_429_time = 0.0
        self._lock = asyncio.Lock()

    @property
    def rate(self) -> float:
        return self._rate

    async def on_429(self) -> float:
        """Halves the current request rate and returns the new rate."""
        async with self._lock:
            self._rate = max(self._min_rate, self._rate * 0.5)
            self._last_429_time = time.monotonic()
            log.warning(
                f"[yellow]Generation API rate limit hit. "
                f"New rate: {self._rate:.2f} calls/s[/yellow]"
            )
            return self._rate

    async def acquire(self) -> None:
        """Waits until the next call is allowed under the current rate."""
        async with self._lock:
            now = time.monotonic()
            if (
                self._last_429_time
                and now - self._last_429_time > self.RECOVERY_QUIET_SECONDS
            ):
                self._rate = min(self._max_rate, self._rate * self.RECOVERY_FACTOR)

            wait = self._last_call_time + 1.0 / self._rate - now
            if wait > 0:
                await asyncio.sleep(wait)

            self._last_call_time = time.monotonic()
