"""Processing log errors."""


class StateError(Exception):
    """Base exception for processing log operations."""


class MissingStateError(StateError):
    """Raised when a referenced log entry does not exist."""
