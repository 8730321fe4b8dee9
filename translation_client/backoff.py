import asyncio
import random
import time
from typing import Optional

from translation_client.models import BackoffConfig


class BackoffTimer:
    """Tracks the retry count and the deadline before the next attempt of one request.

    The first interval is shortened by a random jitter so that clients failing
    together do not retry together. Each sleep grows the interval by
    ``backoff_factor`` up to ``max_delay``, so intervals never decrease.
    """

    def __init__(self, config: Optional[BackoffConfig] = None):
        self.config = config or BackoffConfig()
        self._num_retries = 0
        self._base = min(self.config.initial_delay, self.config.max_delay)
        self._interval = self._base * (1 - self.config.jitter * random.random())
        self._deadline = time.monotonic() + self._interval

    @property
    def interval(self) -> float:
        return self._interval

    def num_retries(self) -> int:
        return self._num_retries

    def time_until_deadline(self) -> float:
        return max(self._deadline - time.monotonic(), 0.0)

    async def sleep_until_deadline(self) -> None:
        await asyncio.sleep(self.time_until_deadline())

        self._base = min(self._base * self.config.backoff_factor, self.config.max_delay)
        self._interval = self._base
        self._deadline = time.monotonic() + self._interval
        self._num_retries += 1
