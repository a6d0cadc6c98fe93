"""Text extraction errors."""

from __future__ import annotations

import errno


class ExtractionError(Exception):
    """Raised when a file's text cannot be extracted."""


class UnsupportedFileTypeError(ExtractionError):
    """Raised when no extractor handles the declared file type."""


def is_lock_error(exc: BaseException) -> bool:
    """Return True when ``exc`` (or an error it wraps) signals a locked file.

    Lock errors are ``EBUSY`` OS errors and any error whose message mentions
    the file being locked.
    """

    current: BaseException | None = exc
    while current is not None:
        if isinstance(current, OSError) and current.errno == errno.EBUSY:
            return True
        if "locked" in str(current).lower():
            return True
        current = current.__cause__
    return False


__all__ = ["ExtractionError", "UnsupportedFileTypeError", "is_lock_error"]
