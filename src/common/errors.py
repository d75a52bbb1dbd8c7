from __future__ import annotations


class DataboxError(RuntimeError):
    """Base error for databox."""


class NotInitializedError(DataboxError):
    """Store used before its backing file was loaded."""


class ConfigError(DataboxError):
    """Configuration is invalid."""


class MissingConfigError(ConfigError):
    """A required configuration field is missing or empty."""

    def __init__(self, field: str) -> None:
        super().__init__(f"Missing required field: {field}")
        self.field = field


class NotSerializableError(DataboxError):
    """Value cannot be represented in the encrypted store."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


__all__ = [
    "DataboxError",
    "NotInitializedError",
    "ConfigError",
    "MissingConfigError",
    "NotSerializableError",
]
