"""Model configuration: provider, model name, limits and defaults."""

import os

from pydantic import BaseModel, Field, model_validator

# Environment variables LiteLLM reads for each provider prefix.
PROVIDER_KEY_ENV: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "azure": "AZURE_API_KEY",
}


class ModelConfig(BaseModel):
    """Configuration for a model client.

    The ``model`` field uses LiteLLM's naming convention:
    ``provider/model_name`` (e.g. ``openai/gpt-4o-mini``,
    ``anthropic/claude-3-5-sonnet``).  Durations are in seconds.
    """

    model: str
    api_key: str | None = None
    api_base: str | None = None

    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2000, gt=0)
    timeout: float = Field(default=30.0, gt=0, description="Per-attempt timeout.")

    max_retries: int = Field(default=3, ge=0)
    retry_base_delay: float = Field(default=1.0, ge=0)
    retry_multiplier: float = Field(default=2.0, ge=1.0)
    retry_max_delay: float = Field(default=60.0, gt=0)
    retry_jitter: float = Field(default=0.1, ge=0.0, le=1.0)

    rate_limit_window: float = Field(default=60.0, gt=0)
    max_requests_per_window: int = Field(default=60, ge=1)
    max_tokens_per_window: int = Field(default=100_000, ge=1)

    @model_validator(mode="after")
    def _check_delays(self) -> "ModelConfig":
        if self.retry_base_delay > self.retry_max_delay:
            raise ValueError("retry_base_delay must not exceed retry_max_delay")
        return self

    @property
    def provider(self) -> str:
        """Extract the provider prefix from the model string."""
        if "/" in self.model:
            return self.model.split("/", 1)[0]
        return "openai"

    @property
    def api_key_env(self) -> str | None:
        """Name of the environment variable holding this provider's key, if known."""
        return PROVIDER_KEY_ENV.get(self.provider)

    def resolve_api_key(self) -> str | None:
        """Return the explicit key, else the provider's environment variable."""
        if self.api_key:
            return self.api_key
        env = self.api_key_env
        if env:
            return os.environ.get(env) or None
        return None
