"""Decision-count rate limiting for a task agent.

Separate from the model client's request window: this one counts decisions
per minute and per hour, and saturated events are dropped rather than
delayed.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from opsagent.agent.models import RateLimitOccupancy
from opsagent.utils.windows import SlidingWindow

MINUTE = 60.0
HOUR = 3600.0


class DecisionRateLimiter:
    def __init__(
        self,
        *,
        per_minute: int = 30,
        per_hour: int = 300,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._minute = SlidingWindow(MINUTE, per_minute)
        self._hour = SlidingWindow(HOUR, per_hour)
        self._clock = clock

    def is_limited(self) -> bool:
        now = self._clock()
        return self._minute.is_full(now) or self._hour.is_full(now)

    def record(self) -> None:
        now = self._clock()
        self._minute.record(now)
        self._hour.record(now)

    def occupancy(self) -> RateLimitOccupancy:
        now = self._clock()
        return RateLimitOccupancy(
            decisions_this_minute=self._minute.count(now),
            decisions_this_hour=self._hour.count(now),
            is_limited=self._minute.is_full(now) or self._hour.is_full(now),
        )
