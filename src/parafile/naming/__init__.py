"""Naming-pattern engine."""

from .engine import (
    apply_formatting,
    apply_pattern,
    extract_placeholders,
    has_only_original_name,
    placeholder_token,
    sanitize_filename,
)

__all__ = [
    "apply_formatting",
    "apply_pattern",
    "extract_placeholders",
    "has_only_original_name",
    "placeholder_token",
    "sanitize_filename",
]
