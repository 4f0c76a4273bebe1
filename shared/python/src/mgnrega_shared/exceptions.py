"""
exceptions.py — Error taxonomy for the sync subsystem.

Propagation rules:
  ConfigurationError         fatal for a run, never retried
  UpstreamFetchError         per endpoint, absorbed by the fetch orchestration
  NoDataError                run level, reported as a "no_data" SyncRun
  RecordReconciliationError  per record, counted by the Reconciler
  RateLimitError             client side only, retried then degraded to None
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for every error raised by mgnrega-sync."""


class ConfigurationError(SyncError):
    """A required setting is missing or invalid."""


class UpstreamFetchError(SyncError):
    """One upstream endpoint could not be fetched."""

    def __init__(self, endpoint: str, cause: Exception | str) -> None:
        self.endpoint = endpoint
        self.cause = cause
        super().__init__(f"Upstream request to '{endpoint}' failed: {cause}")


class NoDataError(SyncError):
    """Every upstream endpoint returned zero records."""

    def __init__(self, message: str = "No data available from API") -> None:
        super().__init__(message)


class RecordReconciliationError(SyncError):
    """A single upsert against the store failed."""

    def __init__(self, entity: str, key: object, cause: Exception | str) -> None:
        self.entity = entity
        self.key = key
        self.cause = cause
        super().__init__(f"Failed to upsert {entity} {key}: {cause}")


class RateLimitError(SyncError):
    """The read API answered 429 Too Many Requests."""

    def __init__(self, endpoint: str, retry_after: float | None = None) -> None:
        self.endpoint = endpoint
        self.retry_after = retry_after
        super().__init__(f"Rate limited on '{endpoint}' (retry_after={retry_after})")


class ConfirmationRequiredError(SyncError):
    """An administrative clear was requested without the confirmation token."""
