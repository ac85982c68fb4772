"""Helpers for pulling JSON out of free-form model output."""

from __future__ import annotations

import json
import re
from typing import Any

# Accepts ```json ... ``` and bare ``` ... ``` fences anywhere in the text.
_CODE_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def strip_code_fence(text: str) -> str:
    """Return the body of the first fenced code block, or the trimmed text."""
    stripped = text.strip()
    match = _CODE_FENCE_RE.search(stripped)
    if match:
        return match.group(1).strip()
    return stripped


def loads_fenced(text: str) -> Any:
    """Parse JSON that may be wrapped in a markdown code fence.

    Raises:
        json.JSONDecodeError: If the (unfenced) text is not valid JSON.
    """
    return json.loads(strip_code_fence(text))
