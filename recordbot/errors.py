"""Exception hierarchy shared by the storage layer and the chain/sequence core."""

from __future__ import annotations

from typing import Optional

__all__ = [
    "RecordBotError",
    "NotFoundError",
    "InvalidScopeError",
    "DanglingChainReferenceError",
    "ChainIntegrityError",
    "DuplicateSequenceIDError",
    "StorageError",
    "DatabaseInitError",
]


class RecordBotError(Exception):
    """Base class for every error raised by the record bot core."""


class NotFoundError(RecordBotError):
    """A required entity has no row."""


class InvalidScopeError(RecordBotError, ValueError):
    """A sequence scope kind or key could not be parsed."""


class DanglingChainReferenceError(RecordBotError):
    """A joint build record points at a missing entry or at another record."""

    def __init__(self, message: str, *, target_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.target_id = target_id


class ChainIntegrityError(RecordBotError):
    """A chain traversal hit a cycle, a broken link or its depth limit.

    ``entry_id`` is the entry at which the traversal gave up.
    """

    def __init__(self, message: str, *, entry_id: int) -> None:
        super().__init__(message)
        self.entry_id = entry_id


class DuplicateSequenceIDError(RecordBotError):
    """An insert collided with an existing (scope, id) pair."""


class StorageError(RecordBotError):
    """The backing store failed; ``__cause__`` holds the driver error."""


class DatabaseInitError(StorageError):
    """The database could not be opened or its schema created."""
