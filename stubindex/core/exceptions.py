"""Stubindex custom exceptions."""

from __future__ import annotations


class StubIndexError(Exception):
    """Base exception for Stubindex errors."""


class ParseError(StubIndexError):
    """Error parsing a stub source unit."""

    def __init__(self, message: str, unit: str | None = None, line: int | None = None) -> None:
        super().__init__(message)
        self.unit = unit
        self.line = line


class SourceError(StubIndexError):
    """Stub sources could not be read at all."""


class NamespaceNotFoundError(StubIndexError):
    """Namespace not found in the index."""


class ConfigError(StubIndexError):
    """Invalid configuration value."""
