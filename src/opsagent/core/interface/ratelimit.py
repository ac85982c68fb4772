"""Client-side request/token window for a single model client."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Awaitable, Callable

from opsagent.core.interface.models import RateLimitStatus
from opsagent.utils.windows import SlidingWindow

logger = logging.getLogger(__name__)


class RequestRateLimiter:
    """Caps requests and tokens per fixed window.

    :meth:`acquire` blocks (via *sleep*) until a request slot is free and
    records the request.  Concurrent callers are serialized by a lock so
    two waiters cannot both take the last slot.
    """

    def __init__(
        self,
        *,
        window: float = 60.0,
        max_requests: int = 60,
        max_tokens: int = 100_000,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._requests = SlidingWindow(window, max_requests)
        self._max_tokens = max_tokens
        self._tokens_used = 0
        self._token_window_start: float | None = None
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()

    @property
    def window(self) -> float:
        return self._requests.duration

    def _roll_token_window(self, now: float) -> None:
        if self._token_window_start is not None and now - self._token_window_start >= self.window:
            self._tokens_used = 0
            self._token_window_start = None

    def _saturated(self, now: float) -> bool:
        self._roll_token_window(now)
        return self._requests.is_full(now) or self._tokens_used >= self._max_tokens

    def _wait_time(self, now: float) -> float:
        waits = []
        if self._requests.is_full(now):
            waits.append(self._requests.reset_in(now))
        if self._tokens_used >= self._max_tokens and self._token_window_start is not None:
            waits.append(max(0.0, self._token_window_start + self.window - now))
        return max(waits, default=0.0)

    async def acquire(self) -> None:
        """Wait for a free slot, then record one request."""
        async with self._lock:
            now = self._clock()
            while self._saturated(now):
                wait = self._wait_time(now)
                logger.info("Model rate limit reached, waiting %.2fs", wait)
                await self._sleep(wait)
                now = self._clock()
            self._requests.record(now)

    def record_tokens(self, tokens: int) -> None:
        """Add *tokens* from a successful response to the current window."""
        if tokens <= 0:
            return
        now = self._clock()
        self._roll_token_window(now)
        if self._token_window_start is None:
            self._token_window_start = now
        self._tokens_used += tokens

    def status(self) -> RateLimitStatus:
        now = self._clock()
        limited = self._saturated(now)
        reset_in = self._wait_time(now) if limited else self._requests.reset_in(now)
        return RateLimitStatus(
            is_limited=limited,
            requests_in_window=self._requests.count(now),
            max_requests_per_window=self._requests.limit,
            reset_in_ms=math.ceil(reset_in * 1000),
            tokens_used_in_window=self._tokens_used,
        )
