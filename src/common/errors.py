"""Exception hierarchy shared by the indexing, ingest and search packages.

Absent resources are not errors: lookups that hit a 404 return ``None``.
Everything below is fatal for the operation that raised it and is expected to
propagate to the caller (or to the message bus, which redelivers).
"""

from __future__ import annotations

from typing import Any


class IndexingError(RuntimeError):
    """Base class for every error raised by this project."""


class ConfigurationError(IndexingError):
    """Raised by entry points when a required setting is missing."""


class UpstreamError(IndexingError):
    """A remote dependency answered with a non-2xx status or could not be reached."""

    def __init__(self, message: str, status: int | None = None, body: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class SearchStoreConnectionError(UpstreamError):
    """Raised when the client fails to connect to the search store."""


class ResponseValidationError(IndexingError):
    """A response did not match the schema its caller relies on."""

    def __init__(self, message: str, body: Any = None) -> None:
        super().__init__(message)
        self.body = body
