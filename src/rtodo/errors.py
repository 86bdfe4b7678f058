# src/rtodo/errors.py

"""
Error taxonomy shared by the store, the service facade, the bus and the view store.

Everything raised on purpose derives from RtodoError, so UI-facing code can catch
one base class and keep showing its last good state.
"""

from __future__ import annotations


class RtodoError(Exception):
    """Base class for all rtodo errors."""


class ValidationError(RtodoError):
    """Bad caller input: empty text, unparsable date, unknown position."""


class NotFoundError(RtodoError):
    def __init__(self, task_id: int) -> None:
        super().__init__(f"Task not found: id={task_id}")
        self.task_id = task_id


class StorageError(RtodoError):
    """SQLite failed in a way that is not a lock timeout."""


class StorageUnavailableError(StorageError):
    """Store closed, or the database file cannot be opened."""


class TransactionConflictError(StorageError):
    """
    Lock wait exceeded the busy timeout.

    Retryable: another writer (usually the other window) held the database lock.
    """


class SerializationError(RtodoError):
    """Event payload is not JSON-representable."""
