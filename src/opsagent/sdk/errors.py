"""SDK error types."""

from __future__ import annotations


class SettingsValidationError(Exception):
    """Raised when an agent settings YAML fails parsing or validation."""
