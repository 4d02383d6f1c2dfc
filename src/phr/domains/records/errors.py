"""Failure kinds of the record synchronization layer."""

from __future__ import annotations


class RecordSyncError(Exception):
    """Base exception for record channel failures."""


class NotAuthenticated(RecordSyncError):
    """No active user when a record operation was requested."""


class ReadFailed(RecordSyncError):
    """The store failed while loading records (not the same as "no row")."""


class ExistenceCheckFailed(ReadFailed):
    """The store failed while checking whether the user's row exists."""


class WriteFailed(RecordSyncError):
    """The store rejected an insert, update or delete."""


class DecodeError(RecordSyncError):
    """A stored value does not have the expected shape."""


class MetricNotFoundError(RecordSyncError):
    """A reading referenced a metric key that is not declared in the document."""

    def __init__(self, metric_key: str) -> None:
        self.metric_key = metric_key
        super().__init__(f"Unknown metric: {metric_key!r}")


class InvalidRecord(RecordSyncError):
    """Caller-supplied values break an entity invariant (no remote call made)."""
