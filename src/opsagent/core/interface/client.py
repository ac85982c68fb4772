"""ModelClient: resilient async access to LLMs via LiteLLM.

Wraps ``litellm.acompletion`` with request/token rate limiting, a per-attempt
timeout, exponential-backoff retry and error normalization, so the rest of
the system only ever sees :class:`ModelResponse` or an :class:`LLMError`.
"""

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

import litellm
from pydantic import BaseModel, ValidationError

from opsagent.core.interface.config import ModelConfig
from opsagent.core.interface.errors import APIKeyError, LLMError, LLMTimeoutError, LLMValidationError, normalize_error
from opsagent.core.interface.models import ChatMessage, CompletionOptions, ModelResponse, RateLimitStatus, TokenUsage
from opsagent.core.interface.ratelimit import RequestRateLimiter
from opsagent.core.interface.retry import RetryPolicy
from opsagent.core.interface.structured import parse_structured, with_json_instruction
from opsagent.utils.telemetry import (
    ATTR_ATTEMPTS,
    ATTR_FINISH_REASON,
    ATTR_MODEL,
    ATTR_PROVIDER,
    ATTR_TOKENS_COMPLETION,
    ATTR_TOKENS_PROMPT,
    ATTR_TOKENS_TOTAL,
    get_tracer,
    set_span_attributes,
)

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

T = TypeVar("T", bound=BaseModel)


class ModelClient:
    """Async client for chat completions via LiteLLM.

    Usage::

        config = ModelConfig(model="openai/gpt-4o-mini")
        client = ModelClient(config)
        response = await client.complete([ChatMessage.user("Hello")])

    *clock*, *sleep* and *rand* are injectable so rate limiting and backoff
    can be driven deterministically in tests.
    """

    def __init__(
        self,
        config: ModelConfig,
        *,
        retry_policy: RetryPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rand: Callable[[], float] = random.random,
    ) -> None:
        self.config = config
        self.retry_policy = retry_policy or RetryPolicy.from_config(config)
        self._clock = clock
        self._sleep = sleep
        self._rand = rand
        self._limiter = RequestRateLimiter(
            window=config.rate_limit_window,
            max_requests=config.max_requests_per_window,
            max_tokens=config.max_tokens_per_window,
            clock=clock,
            sleep=sleep,
        )

    def is_ready(self) -> bool:
        """Return ``True`` if credentials (or a keyless endpoint) are configured."""
        return bool(self.config.resolve_api_key() or self.config.api_base)

    def get_rate_limit_status(self) -> RateLimitStatus:
        return self._limiter.status()

    async def complete(
        self,
        messages: Sequence[ChatMessage | dict[str, Any]],
        options: CompletionOptions | None = None,
    ) -> ModelResponse:
        """Send *messages* to the configured model and return the normalized response.

        Raises:
            LLMValidationError: If *messages* is empty or malformed.
            APIKeyError: If no credentials are configured.
            LLMError: The normalized provider error once retries are exhausted.
        """
        with _tracer.start_as_current_span("model.complete") as span:
            set_span_attributes(span, {ATTR_MODEL: self.config.model, ATTR_PROVIDER: self.config.provider})

            prepared = self._validate_messages(messages)
            if not self.is_ready():
                raise APIKeyError(self.config.provider, env_var=self.config.api_key_env)

            await self._limiter.acquire()

            call_kwargs = self._build_call_kwargs(prepared, options or CompletionOptions())
            timeout = options.timeout if options and options.timeout else self.config.timeout
            start = self._clock()
            attempt = 0
            while True:
                attempt += 1
                try:
                    raw = await asyncio.wait_for(litellm.acompletion(**call_kwargs), timeout=timeout)  # pyright: ignore[reportUnknownMemberType]
                    break
                except TimeoutError as exc:
                    error: LLMError = LLMTimeoutError(timeout, provider=self.config.provider, original=exc)
                except Exception as exc:
                    error = normalize_error(exc, self.config.provider)

                if not self.retry_policy.should_retry(error, attempt):
                    span.set_attribute(ATTR_ATTEMPTS, attempt)
                    logger.error("Model call failed after %d attempt(s): %s", attempt, error)
                    raise error from error.original

                delay = self.retry_policy.compute_delay(attempt, error, self._rand())
                logger.warning(
                    "Model call attempt %d failed (%s), retrying in %.2fs", attempt, error.code, delay
                )
                await self._sleep(delay)

            span.set_attribute(ATTR_ATTEMPTS, attempt)
            response = self._parse_response(raw, latency_ms=(self._clock() - start) * 1000)

            usage = response.usage
            if usage is not None:
                self._limiter.record_tokens(usage.total_tokens)
            set_span_attributes(
                span,
                {
                    ATTR_TOKENS_PROMPT: usage.prompt_tokens if usage else None,
                    ATTR_TOKENS_COMPLETION: usage.completion_tokens if usage else None,
                    ATTR_TOKENS_TOTAL: usage.total_tokens if usage else None,
                    ATTR_FINISH_REASON: response.finish_reason,
                },
            )

            logger.debug("Model call completed in %.0fms after %d attempt(s)", response.latency_ms, attempt)
            return response

    async def complete_structured(
        self,
        messages: Sequence[ChatMessage | dict[str, Any]],
        schema: type[T],
        options: CompletionOptions | None = None,
    ) -> T:
        """Complete and validate the response content against the pydantic *schema*.

        Raises:
            LLMValidationError: If the content is not JSON or does not match *schema*.
        """
        with _tracer.start_as_current_span("model.complete_structured"):
            prepared = with_json_instruction(self._validate_messages(messages), schema)
            structured_options = (options or CompletionOptions()).model_copy(update={"json_mode": True})
            response = await self.complete(prepared, structured_options)
            return parse_structured(response.content, schema, provider=self.config.provider)

    def _validate_messages(self, messages: Sequence[ChatMessage | dict[str, Any]]) -> list[ChatMessage]:
        if not messages:
            raise LLMValidationError("messages must not be empty", provider=self.config.provider)
        try:
            return [m if isinstance(m, ChatMessage) else ChatMessage.model_validate(m) for m in messages]
        except ValidationError as exc:
            raise LLMValidationError(
                "Invalid message in conversation", provider=self.config.provider, details=exc.errors()
            ) from exc

    def _build_call_kwargs(self, messages: list[ChatMessage], options: CompletionOptions) -> dict[str, Any]:
        call_kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": [m.model_dump() for m in messages],
            "temperature": options.temperature if options.temperature is not None else self.config.temperature,
            "max_tokens": options.max_tokens or self.config.max_tokens,
        }
        if self.config.api_key:
            call_kwargs["api_key"] = self.config.api_key
        if self.config.api_base:
            call_kwargs["api_base"] = self.config.api_base
        if options.json_mode:
            call_kwargs["response_format"] = {"type": "json_object"}
        return call_kwargs

    def _parse_response(self, response: Any, *, latency_ms: float) -> ModelResponse:
        """Convert a LiteLLM response to a :class:`ModelResponse`.

        LiteLLM returns OpenAI-compatible response objects regardless of
        the underlying provider.
        """
        choice = response.choices[0]
        usage: TokenUsage | None = None
        if getattr(response, "usage", None):
            usage = TokenUsage(
                prompt_tokens=int(response.usage.prompt_tokens or 0),
                completion_tokens=int(response.usage.completion_tokens or 0),
                total_tokens=int(response.usage.total_tokens or 0),
            )
        finish_reason = choice.finish_reason
        return ModelResponse(
            content=choice.message.content or "",
            usage=usage,
            finish_reason=str(finish_reason) if finish_reason is not None else None,
            latency_ms=latency_ms,
            model=str(getattr(response, "model", None) or self.config.model),
        )
