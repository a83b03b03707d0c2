"""Exceptions raised by the package indexer."""

from typing import Optional


class IndexerError(Exception):
    """Base class for all indexer errors."""


class ConfigError(IndexerError):
    """Raised when required configuration is missing or invalid."""


class RegistryError(IndexerError):
    """Raised when the package registry cannot be reached or answers with an error.

    Attributes:
        url: The URL that was requested.
        status_code: HTTP status code, or None when no response was received.
    """

    def __init__(self, message: str, url: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class SearchIndexError(IndexerError):
    """Raised when a search index request fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BootstrapError(IndexerError):
    """Raised when a run prerequisite (locale list, core version history) is unavailable."""


class ConstraintError(ValueError):
    """Raised for version constraints that cannot be parsed."""
