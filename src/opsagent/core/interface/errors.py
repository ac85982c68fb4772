"""Error taxonomy for the model client.

Every failure that leaves :class:`~opsagent.core.interface.client.ModelClient`
is an :class:`LLMError` subclass.  Provider exceptions raised by LiteLLM are
converted by :func:`normalize_error` before the retry decision is made, so
retry logic only ever looks at ``LLMError.retryable``.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any

import litellm

# Messages of unclassified errors that indicate a transient transport problem.
_TRANSIENT_RE = re.compile(r"network|econnreset|socket|timeout|timed out|connection reset")


class LLMError(Exception):
    """Base error for all model-client failures."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "UNKNOWN_ERROR",
        provider: str = "",
        status_code: int | None = None,
        retryable: bool = False,
        original: BaseException | None = None,
    ) -> None:
        self.code = code
        self.provider = provider
        self.status_code = status_code
        self.retryable = retryable
        self.original = original
        super().__init__(message)

    @property
    def retry_after(self) -> float | None:
        """Provider-supplied delay in seconds before retrying, if any."""
        return None


class RateLimitError(LLMError):
    """The provider (or the local request window) refused the call for now."""

    def __init__(
        self,
        message: str,
        *,
        provider: str = "",
        retry_after: float | None = None,
        original: BaseException | None = None,
    ) -> None:
        self._retry_after = retry_after
        super().__init__(
            message,
            code="RATE_LIMIT_EXCEEDED",
            provider=provider,
            status_code=429,
            retryable=True,
            original=original,
        )

    @property
    def retry_after(self) -> float | None:
        return self._retry_after


class AuthenticationError(LLMError):
    """Credentials were rejected by the provider."""

    def __init__(
        self, message: str, *, provider: str = "", status_code: int = 401, original: BaseException | None = None
    ) -> None:
        super().__init__(
            message,
            code="AUTHENTICATION_FAILED",
            provider=provider,
            status_code=status_code,
            retryable=False,
            original=original,
        )


class APIKeyError(LLMError):
    """No API key is configured for the provider."""

    def __init__(self, provider: str, *, env_var: str | None = None) -> None:
        hint = f" Set {env_var} or pass api_key." if env_var else ""
        super().__init__(
            f"API key not configured for {provider or 'model provider'}.{hint}",
            code="API_KEY_MISSING",
            provider=provider,
            retryable=False,
        )


class LLMValidationError(LLMError):
    """Malformed request input or a response that does not match the expected schema."""

    def __init__(self, message: str, *, provider: str = "", details: Any = None) -> None:
        self.details = details
        super().__init__(
            message,
            code="VALIDATION_FAILED",
            provider=provider,
            status_code=400,
            retryable=False,
        )


class LLMTimeoutError(LLMError):
    """A single attempt exceeded its deadline."""

    def __init__(self, timeout: float, *, provider: str = "", original: BaseException | None = None) -> None:
        self.timeout = timeout
        super().__init__(
            f"Request timed out after {timeout}s",
            code="TIMEOUT",
            provider=provider,
            status_code=408,
            retryable=True,
            original=original,
        )


class ContentFilterError(LLMError):
    """The provider blocked the prompt or the completion."""

    def __init__(self, message: str, *, provider: str = "", original: BaseException | None = None) -> None:
        super().__init__(
            message,
            code="CONTENT_FILTERED",
            provider=provider,
            status_code=400,
            retryable=False,
            original=original,
        )


class ModelOverloadedError(LLMError):
    """The provider reports the model as overloaded or unavailable."""

    def __init__(
        self,
        *,
        provider: str = "",
        retry_after: float | None = None,
        retryable: bool = False,
        original: BaseException | None = None,
    ) -> None:
        self._retry_after = retry_after
        super().__init__(
            f"{provider or 'Provider'} model is currently overloaded",
            code="MODEL_OVERLOADED",
            provider=provider,
            status_code=503,
            retryable=retryable,
            original=original,
        )

    @property
    def retry_after(self) -> float | None:
        return self._retry_after


def is_transient_message(message: str) -> bool:
    """Return ``True`` if *message* looks like a network or timeout failure."""
    return bool(_TRANSIENT_RE.search(message.lower()))


def normalize_error(exc: BaseException, provider: str = "") -> LLMError:
    """Convert any exception raised during a completion into an :class:`LLMError`.

    LiteLLM exception classes are checked first, then the HTTP status code
    (if the exception carries one), then the message heuristic.
    """
    if isinstance(exc, LLMError):
        return exc

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, litellm.Timeout)):
        return LLMTimeoutError(_timeout_of(exc), provider=provider, original=exc)

    message = str(exc) or exc.__class__.__name__

    # ContentPolicyViolationError subclasses BadRequestError, check it first.
    if isinstance(exc, litellm.ContentPolicyViolationError):
        return ContentFilterError(message, provider=provider, original=exc)
    if isinstance(exc, litellm.RateLimitError):
        return RateLimitError(message, provider=provider, retry_after=_retry_after_of(exc), original=exc)
    if isinstance(exc, (litellm.AuthenticationError, litellm.PermissionDeniedError)):
        return AuthenticationError(
            message, provider=provider, status_code=_status_of(exc) or 401, original=exc
        )
    if isinstance(exc, litellm.ServiceUnavailableError):
        return _overloaded(exc, provider)
    if isinstance(exc, litellm.APIConnectionError):
        return LLMError(message, code="CONNECTION_ERROR", provider=provider, retryable=True, original=exc)

    status = _status_of(exc)
    if status == 429:
        return RateLimitError(message, provider=provider, retry_after=_retry_after_of(exc), original=exc)
    if status in (401, 403):
        return AuthenticationError(message, provider=provider, status_code=status, original=exc)
    if status in (503, 529):
        return _overloaded(exc, provider)
    if status is not None and status >= 500:
        return LLMError(message, code="SERVER_ERROR", provider=provider, status_code=status, retryable=True, original=exc)
    if status is not None:
        return LLMError(message, code="REQUEST_FAILED", provider=provider, status_code=status, original=exc)

    return LLMError(message, provider=provider, retryable=is_transient_message(message), original=exc)


def _overloaded(exc: BaseException, provider: str) -> ModelOverloadedError:
    retry_after = _retry_after_of(exc)
    return ModelOverloadedError(
        provider=provider,
        retry_after=retry_after,
        retryable=retry_after is not None,
        original=exc,
    )


def _status_of(exc: BaseException) -> int | None:
    status = getattr(exc, "status_code", None)
    return status if isinstance(status, int) else None


def _timeout_of(exc: BaseException) -> float:
    timeout = getattr(exc, "timeout", None)
    return float(timeout) if isinstance(timeout, (int, float)) else 0.0


def _retry_after_of(exc: BaseException) -> float | None:
    """Read a ``Retry-After`` header (seconds) from the provider response."""
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None)
    if headers is None:
        return None
    try:
        raw = headers.get("retry-after")
    except AttributeError:
        return None
    if raw is None:
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if value >= 0 else None
