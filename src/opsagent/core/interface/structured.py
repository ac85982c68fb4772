"""Structured (JSON) output helpers for the model client."""

from __future__ import annotations

import json
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from opsagent.core.interface.errors import LLMValidationError
from opsagent.core.interface.models import ChatMessage
from opsagent.utils.jsontext import loads_fenced

T = TypeVar("T", bound=BaseModel)


def json_instruction(schema: type[BaseModel]) -> str:
    """Return the instruction telling the model to answer with JSON matching *schema*."""
    rendered = json.dumps(schema.model_json_schema(by_alias=True), indent=2)
    return (
        "Respond with a single JSON object that conforms to this JSON Schema. "
        "Do not include any text outside the JSON.\n"
        f"{rendered}"
    )


def with_json_instruction(messages: list[ChatMessage], schema: type[BaseModel]) -> list[ChatMessage]:
    """Return a copy of *messages* with the schema instruction attached.

    The instruction is appended to the first system message, or a new system
    message carrying it is prepended when there is none.
    """
    instruction = json_instruction(schema)
    result = list(messages)
    for index, message in enumerate(result):
        if message.role == "system":
            result[index] = ChatMessage.system(f"{message.content}\n\n{instruction}")
            return result
    return [ChatMessage.system(instruction), *result]


def parse_structured(content: str, schema: type[T], provider: str = "") -> T:
    """Parse *content* as JSON (code fences allowed) and validate it against *schema*."""
    try:
        data = loads_fenced(content)
    except json.JSONDecodeError as exc:
        raise LLMValidationError(
            f"Model response is not valid JSON: {exc.msg}", provider=provider, details=content
        ) from exc
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        raise LLMValidationError(
            f"Model response does not match {schema.__name__}", provider=provider, details=exc.errors()
        ) from exc
