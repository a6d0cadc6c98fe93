"""Naming-pattern parsing, substitution, and filename formatting helpers.

Everything in this module is pure: no state and no filesystem access.
"""

from __future__ import annotations

import re
from typing import Mapping

from parafile.config.models import ORIGINAL_NAME_VARIABLE

_PLACEHOLDER = re.compile(r"\{([^{}]+)\}")
_UNSAFE_CHARACTERS = re.compile(r'[<>:"/\\|?*]')
_WHITESPACE = re.compile(r"\s+")
_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]+")
_WORDS = re.compile(r"[A-Za-z0-9]+")
_WORD_START = re.compile(r"(^|\s)(\S)")


def extract_placeholders(pattern: str) -> list[str]:
    """Return placeholder names in order of first appearance.

    Args:
        pattern: Naming pattern such as ``Invoice_{date}_{vendor}``.

    Returns:
        list[str]: Unique placeholder names, e.g. ``["date", "vendor"]``.
    """

    return list(dict.fromkeys(match.group(1) for match in _PLACEHOLDER.finditer(pattern)))


def has_only_original_name(pattern: str) -> bool:
    """Return True when ``{original_name}`` is the only placeholder in ``pattern``."""

    return extract_placeholders(pattern) == [ORIGINAL_NAME_VARIABLE]


def apply_pattern(pattern: str, values: Mapping[str, str]) -> str:
    """Substitute every ``{name}`` occurrence with its value.

    Placeholders without an entry in ``values`` stay in the output verbatim so
    unresolved variables remain visible in the resulting filename. Values are
    inserted as given; callers sanitize untrusted values beforehand.

    Args:
        pattern: Naming pattern containing ``{name}`` placeholders.
        values: Mapping of placeholder names to resolved values.

    Returns:
        str: Pattern with known placeholders replaced.
    """

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in values:
            return match.group(0)
        return str(values[name])

    return _PLACEHOLDER.sub(_replace, pattern)


def apply_formatting(text: str, mode: str | None) -> str:
    """Apply a case transform to ``text``.

    Args:
        text: Value to format.
        mode: One of ``uppercase``, ``lowercase``, ``title``, ``sentence``,
            ``kebab``, ``snake``, ``camel``, ``pascal``. ``none`` and unknown
            modes return the text unchanged.

    Returns:
        str: Formatted text.
    """

    if not text:
        return text
    if mode == "uppercase":
        return text.upper()
    if mode == "lowercase":
        return text.lower()
    if mode == "title":
        return _WORD_START.sub(lambda m: m.group(1) + m.group(2).upper(), text.lower())
    if mode == "sentence":
        return text[:1].upper() + text[1:].lower()
    if mode == "kebab":
        return _NON_ALPHANUMERIC.sub("-", text.lower()).strip("-")
    if mode == "snake":
        return _NON_ALPHANUMERIC.sub("_", text.lower()).strip("_")
    if mode in {"camel", "pascal"}:
        words = [word[:1].upper() + word[1:].lower() for word in _WORDS.findall(text)]
        joined = "".join(words)
        if mode == "camel":
            return joined[:1].lower() + joined[1:]
        return joined
    return text


def sanitize_filename(text: str) -> str:
    """Replace characters that are illegal in filenames and tidy whitespace.

    Args:
        text: Candidate filename fragment.

    Returns:
        str: Text with ``< > : " / \\ | ? *`` replaced by ``_``, whitespace runs
        collapsed to a single space, and surrounding whitespace trimmed.
    """

    cleaned = _UNSAFE_CHARACTERS.sub("_", text)
    return _WHITESPACE.sub(" ", cleaned).strip()


def placeholder_token(name: str) -> str:
    """Return the visible marker used when a variable could not be resolved."""

    return f"<{name.upper()}>"


__all__ = [
    "extract_placeholders",
    "has_only_original_name",
    "apply_pattern",
    "apply_formatting",
    "sanitize_filename",
    "placeholder_token",
]
