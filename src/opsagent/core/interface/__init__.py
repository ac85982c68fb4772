"""Model client: rate-limited, retrying access to LLMs via LiteLLM."""

from opsagent.core.interface.client import ModelClient
from opsagent.core.interface.config import ModelConfig
from opsagent.core.interface.errors import (
    APIKeyError,
    AuthenticationError,
    ContentFilterError,
    LLMError,
    LLMTimeoutError,
    LLMValidationError,
    ModelOverloadedError,
    RateLimitError,
    normalize_error,
)
from opsagent.core.interface.models import (
    ChatMessage,
    CompletionOptions,
    ModelResponse,
    RateLimitStatus,
    TokenUsage,
)
from opsagent.core.interface.ratelimit import RequestRateLimiter
from opsagent.core.interface.retry import RetryPolicy

__all__ = [
    "APIKeyError",
    "AuthenticationError",
    "ChatMessage",
    "CompletionOptions",
    "ContentFilterError",
    "LLMError",
    "LLMTimeoutError",
    "LLMValidationError",
    "ModelClient",
    "ModelConfig",
    "ModelOverloadedError",
    "ModelResponse",
    "RateLimitError",
    "RateLimitStatus",
    "RequestRateLimiter",
    "RetryPolicy",
    "TokenUsage",
    "normalize_error",
]
