"""Per-provider fixed-window request limiter."""
import asyncio
import logging
import time
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class FixedWindowRateLimiter:
    """
    Allows ``requests`` calls per ``window`` seconds.

    The counter and window start are owned by one provider instance and are
    never shared. Callers over capacity wait for the window to roll over and
    re-check in a loop.
    """

    # Reset happens only once strictly past the window edge.
    resolution = 0.001

    def __init__(
        self,
        requests: int,
        window: float,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
        name: str = "",
    ):
        if requests < 1:
            raise ValueError("requests must be >= 1")
        if window <= 0:
            raise ValueError("window must be > 0")
        self.requests = requests
        self.window = window
        self.name = name
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self.request_count = 0
        self.window_start = clock()

    def _roll_window(self, now: float) -> None:
        if now - self.window_start > self.window:
            self.request_count = 0
            self.window_start = now

    def remaining(self) -> int:
        self._roll_window(self._clock())
        return max(0, self.requests - self.request_count)

    async def acquire(self) -> float:
        """Take one slot, waiting if the window is full. Returns seconds waited."""
        waited = 0.0
        async with self._lock:
            while True:
                now = self._clock()
                self._roll_window(now)
                if self.request_count < self.requests:
                    self.request_count += 1
                    return waited

                wait = max(0.0, self.window - (now - self.window_start)) + self.resolution
                logger.warning(f"Rate limit reached for {self.name or 'provider'}, waiting {wait:.3f}s")
                await self._sleep(wait)
                waited += wait

    def defer(self, seconds: float) -> None:
        """Block new calls for ``seconds``, e.g. after a remote 429."""
        now = self._clock()
        self.request_count = self.requests
        self.window_start = now - self.window + seconds
