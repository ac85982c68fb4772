"""Tests for RetryPolicy."""

from __future__ import annotations

import pytest

from opsagent.core.interface.config import ModelConfig
from opsagent.core.interface.errors import AuthenticationError, LLMError, RateLimitError
from opsagent.core.interface.retry import RetryPolicy


class TestRetryPolicy:
    def test_from_config(self) -> None:
        config = ModelConfig(model="openai/gpt-4o", max_retries=5, retry_base_delay=0.5, retry_max_delay=10)
        policy = RetryPolicy.from_config(config)
        assert policy.max_retries == 5
        assert policy.base_delay == 0.5
        assert policy.max_delay == 10

    def test_exponential_backoff(self) -> None:
        policy = RetryPolicy()
        assert [policy.backoff_delay(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_backoff_capped(self) -> None:
        policy = RetryPolicy(max_delay=5.0)
        assert policy.backoff_delay(10) == 5.0

    def test_jitter_bounded(self) -> None:
        policy = RetryPolicy(jitter=0.1)
        assert policy.compute_delay(1, rand=0.0) == 1.0
        assert policy.compute_delay(1, rand=0.999) == pytest.approx(1.0999)
        assert policy.compute_delay(2, rand=0.5) == pytest.approx(2.1)

    def test_jittered_delay_still_capped(self) -> None:
        policy = RetryPolicy(max_delay=4.0, jitter=0.5)
        assert policy.compute_delay(3, rand=0.9) == 4.0

    def test_retry_after_wins(self) -> None:
        policy = RetryPolicy()
        error = RateLimitError("slow down", retry_after=7.0)
        assert policy.compute_delay(1, error, rand=0.9) == 7.0

    def test_retry_after_not_capped(self) -> None:
        policy = RetryPolicy(max_delay=60.0)
        error = RateLimitError("slow down", retry_after=120.0)
        assert policy.compute_delay(1, error) == 120.0

    def test_should_retry_until_exhausted(self) -> None:
        policy = RetryPolicy(max_retries=3)
        error = LLMError("flaky", retryable=True)
        assert policy.should_retry(error, 1)
        assert policy.should_retry(error, 3)
        assert not policy.should_retry(error, 4)

    def test_non_retryable_never_retried(self) -> None:
        policy = RetryPolicy(max_retries=3)
        assert not policy.should_retry(AuthenticationError("bad key"), 1)

    def test_zero_retries(self) -> None:
        policy = RetryPolicy(max_retries=0)
        assert not policy.should_retry(LLMError("flaky", retryable=True), 1)
