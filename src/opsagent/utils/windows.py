"""Sliding time windows for request and decision rate limiting.

Pure bookkeeping: every method takes the current time explicitly so the
window can be driven by a fake clock in tests.  Sleeping and locking live
in the callers.
"""

from __future__ import annotations

from collections import deque


class SlidingWindow:
    """Timestamps of events seen in the last *duration* seconds, capped at *limit*.

    Timestamps older than ``now - duration`` are pruned on every query.
    """

    def __init__(self, duration: float, limit: int) -> None:
        if duration <= 0:
            raise ValueError("duration must be positive")
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.duration = duration
        self.limit = limit
        self._stamps: deque[float] = deque()

    def prune(self, now: float) -> None:
        cutoff = now - self.duration
        while self._stamps and self._stamps[0] <= cutoff:
            self._stamps.popleft()

    def count(self, now: float) -> int:
        self.prune(now)
        return len(self._stamps)

    def is_full(self, now: float) -> bool:
        return self.count(now) >= self.limit

    def record(self, now: float) -> None:
        self._stamps.append(now)

    def reset_in(self, now: float) -> float:
        """Seconds until the oldest timestamp leaves the window (0 when empty)."""
        self.prune(now)
        if not self._stamps:
            return 0.0
        return max(0.0, self._stamps[0] + self.duration - now)

    def clear(self) -> None:
        self._stamps.clear()

    def __len__(self) -> int:
        return len(self._stamps)
