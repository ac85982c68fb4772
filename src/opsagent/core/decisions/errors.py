"""Errors raised by the decision engine."""

from __future__ import annotations

from typing import Any


class DecisionError(Exception):
    """Base error for decision parsing and validation."""


class DecisionParseError(DecisionError):
    """The model output could not be parsed into a JSON object."""

    def __init__(self, message: str, *, raw: Any = None) -> None:
        self.raw = raw
        super().__init__(message)


class DecisionValidationError(DecisionError):
    """The parsed decision failed validation.

    ``errors`` holds every problem found, not just the first one.
    """

    def __init__(self, errors: list[str], *, warnings: list[str] | None = None) -> None:
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        super().__init__(f"Invalid decision: {', '.join(self.errors)}")
