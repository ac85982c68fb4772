"""Message and response types exchanged with the model backend."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["system", "user", "assistant"]


class ChatMessage(BaseModel):
    """A single turn of a conversation.

    Order matters: the system message, when present, comes first.
    """

    role: Role
    content: str

    @classmethod
    def system(cls, text: str) -> "ChatMessage":
        return cls(role="system", content=text)

    @classmethod
    def user(cls, text: str) -> "ChatMessage":
        return cls(role="user", content=text)

    @classmethod
    def assistant(cls, text: str) -> "ChatMessage":
        return cls(role="assistant", content=text)


class TokenUsage(BaseModel):
    """Token accounting reported by the provider for one completion."""

    model_config = ConfigDict(frozen=True)

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ModelResponse(BaseModel):
    """Normalized completion result.  Immutable once returned."""

    model_config = ConfigDict(frozen=True)

    content: str
    usage: TokenUsage | None = None
    finish_reason: str | None = None
    latency_ms: float = 0.0
    model: str = ""


class CompletionOptions(BaseModel):
    """Per-request overrides.  ``None`` fields fall back to the client defaults."""

    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)
    timeout: float | None = Field(default=None, gt=0, description="Per-attempt timeout in seconds.")
    json_mode: bool = False


class RateLimitStatus(BaseModel):
    """Snapshot of the client's request window."""

    model_config = ConfigDict(frozen=True)

    is_limited: bool
    requests_in_window: int
    max_requests_per_window: int
    reset_in_ms: int
    tokens_used_in_window: int
