"""
Custom exceptions for the offline sync store.

Local persistence failures are fatal to the operation that triggered
them and always propagate. Remote failures are recoverable and are
reported per change kind through flush results.
"""

from __future__ import annotations


class OfflineSyncError(Exception):
    """Base exception for all offline sync errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class PersistenceIOError(OfflineSyncError):
    """Raised when the local persistence collaborator fails."""

    def __init__(self, operation: str, key: str | None = None, cause: Exception | None = None):
        details = {"operation": operation}
        if key:
            details["key"] = key
        if cause:
            details["cause"] = str(cause)
        message = f"Persistence I/O error during {operation}"
        if key:
            message += f": {key}"
        super().__init__(message, details)
        self.operation = operation
        self.key = key
        self.cause = cause


class RemoteRejectedError(OfflineSyncError):
    """Raised when the remote authority rejects one kind of a batch."""

    def __init__(self, kind: str, reason: str | None = None):
        details = {"kind": kind}
        if reason:
            details["reason"] = reason
        message = f"Remote authority rejected {kind} records"
        if reason:
            message += f": {reason}"
        super().__init__(message, details)
        self.kind = kind
        self.reason = reason


class RemoteUnreachableError(OfflineSyncError):
    """Raised when the remote authority cannot be reached at all."""

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Remote authority unreachable: {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause


class ConcurrentFlushError(OfflineSyncError):
    """Raised when a flush overlaps kinds that are already in flight."""

    def __init__(self, kinds: list[str]):
        super().__init__(
            f"Flush already in progress for: {', '.join(kinds)}",
            {"kinds": kinds},
        )
        self.kinds = kinds


class BootstrapFailure(OfflineSyncError):
    """Raised when loading the full record set from the authority fails."""

    def __init__(self, reason: str, cause: Exception | None = None):
        details: dict = {"reason": reason}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Bootstrap from remote authority failed: {reason}", details)
        self.reason = reason
        self.cause = cause


class RecordNotFoundError(OfflineSyncError):
    """Raised when a record identity is not in the local collection."""

    def __init__(self, identity: str):
        super().__init__(f"Record not found: {identity}", {"identity": identity})
        self.identity = identity


class ValidationError(OfflineSyncError):
    """Raised when configuration or input validation fails."""

    def __init__(self, field: str, reason: str, value: str | None = None):
        details = {"field": field, "reason": reason}
        if value is not None:
            details["value"] = value
        super().__init__(f"Validation failed for {field}: {reason}", details)
        self.field = field
        self.reason = reason
        self.value = value
