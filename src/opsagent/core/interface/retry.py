"""Retry policy for model calls.

Pure computation: the client owns sleeping and the source of randomness.
"""

from __future__ import annotations

from dataclasses import dataclass

from opsagent.core.interface.config import ModelConfig
from opsagent.core.interface.errors import LLMError


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with bounded jitter.

    ``max_retries`` counts retries after the first attempt, so a call makes
    at most ``max_retries + 1`` attempts.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 60.0
    jitter: float = 0.1

    @classmethod
    def from_config(cls, config: ModelConfig) -> RetryPolicy:
        return cls(
            max_retries=config.max_retries,
            base_delay=config.retry_base_delay,
            multiplier=config.retry_multiplier,
            max_delay=config.retry_max_delay,
            jitter=config.retry_jitter,
        )

    def should_retry(self, error: LLMError, attempt: int) -> bool:
        """Return ``True`` if a retry may follow failed attempt number *attempt* (1-based)."""
        return error.retryable and attempt <= self.max_retries

    def backoff_delay(self, retry: int) -> float:
        """Un-jittered delay before retry number *retry* (1-based), capped."""
        return min(self.base_delay * self.multiplier ** (retry - 1), self.max_delay)

    def compute_delay(self, retry: int, error: LLMError | None = None, rand: float = 0.0) -> float:
        """Delay in seconds before retry number *retry*.

        A provider-supplied ``retry_after`` on *error* replaces the computed
        backoff and is not capped.  *rand* is a sample from ``[0, 1)`` scaling the jitter.
        """
        if error is not None and error.retry_after is not None:
            return error.retry_after
        delay = self.backoff_delay(retry)
        delay += delay * self.jitter * rand
        return min(delay, self.max_delay)
