"""Exception types raised by the thought session components."""

from __future__ import annotations


class ThinkingError(Exception):
    """Base class for every error the session core reports to callers."""


class ValidationError(ThinkingError, ValueError):
    """A turn request or stored thought is missing a field or has the wrong type."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


class UnknownCommandError(ThinkingError):
    def __init__(self, command: str) -> None:
        super().__init__(f"Unknown session command: {command}")
        self.command = command


class GeneratorError(ThinkingError):
    """The external generator failed to produce text."""


class PersistenceIOError(ThinkingError):
    """A session file could not be read or written."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(message)
        self.path = path


class FormatError(ThinkingError):
    """A session file was readable but its content is malformed."""


class LoadError(ThinkingError):
    """A replacement history could not be installed into the store."""


__all__ = [
    "FormatError",
    "GeneratorError",
    "LoadError",
    "PersistenceIOError",
    "ThinkingError",
    "UnknownCommandError",
    "ValidationError",
]
