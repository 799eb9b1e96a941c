"""
Error taxonomy for SAT Quest.

Storage and sync errors are recovered internally by the gamification
engine. Validation, authorization, capacity and not-found errors are
surfaced to callers of the leaderboard operations as typed results.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Machine-readable error categories carried by every SatQuestError."""

    STORAGE_READ = "storage_read"
    STORAGE_WRITE = "storage_write"
    REMOTE = "remote"
    REMOTE_SYNC = "remote_sync"
    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    CAPACITY = "capacity"
    NOT_FOUND = "not_found"


class SatQuestError(Exception):
    """Base class for all SAT Quest errors."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause


class StorageReadError(SatQuestError):
    """Local progress could not be read; the engine falls back to defaults."""

    kind = ErrorKind.STORAGE_READ


class StorageWriteError(SatQuestError):
    """Local progress could not be written; retried on the next mutation."""

    kind = ErrorKind.STORAGE_WRITE


class RemoteStoreError(SatQuestError):
    """A call to the remote profile store failed or returned an error."""

    kind = ErrorKind.REMOTE


class RemoteSyncError(RemoteStoreError):
    """A debounced profile upsert failed; retried on the next window."""

    kind = ErrorKind.REMOTE_SYNC


class ValidationError(SatQuestError):
    """Caller input was rejected (empty name, unknown or blocked user...)."""

    kind = ErrorKind.VALIDATION


class AuthorizationError(SatQuestError):
    """The requesting user may not perform the operation."""

    kind = ErrorKind.AUTHORIZATION


class CapacityError(SatQuestError):
    """A private leaderboard has reached its member limit."""

    kind = ErrorKind.CAPACITY


class NotFoundError(SatQuestError):
    """The referenced leaderboard does not exist."""

    kind = ErrorKind.NOT_FOUND
