"""Custom exceptions for configuration management."""


class ConfigError(Exception):
    """Raised when configuration data cannot be processed."""


class ReservedEntryError(ConfigError):
    """Raised when an edit targets the reserved ``General`` or ``original_name`` entry."""


class DuplicateEntryError(ConfigError):
    """Raised when a category or variable name is already taken."""
