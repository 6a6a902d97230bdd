import asyncio
import time
from typing import Awaitable, Callable, Optional


class Pacer:
    """
    Enforces a minimum spacing between the *starts* of successive operations.

    The wait before the next start is `interval - elapsed_since_last_start`,
    floored at zero, so a slow operation eats into the spacing instead of
    adding to it. Safe to share between concurrent tasks: starts are
    serialized through a lock.
    """

    def __init__(
        self,
        interval_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.interval_seconds = max(0.0, interval_seconds)
        self._clock = clock
        self._sleep = sleep
        self._last_start: Optional[float] = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_milliseconds(cls, interval_ms: int, **kwargs) -> "Pacer":
        return cls(interval_ms / 1000.0, **kwargs)

    def remaining_delay(self) -> float:
        if self._last_start is None:
            return 0.0
        elapsed = self._clock() - self._last_start
        return max(0.0, self.interval_seconds - elapsed)

    async def wait(self) -> float:
        """Wait until the next start is allowed and mark it. Returns the start time."""
        async with self._lock:
            delay = self.remaining_delay()
            if delay > 0:
                await self._sleep(delay)
            self._last_start = self._clock()
            return self._last_start
