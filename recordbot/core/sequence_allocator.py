"""Per-scope monotonic identifiers: strike numbers per user, ticket numbers per guild."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Final, Tuple, TypeVar, Union

from recordbot.db.store import Entity, EntityKind, EntityStore
from recordbot.errors import DuplicateSequenceIDError, InvalidScopeError, StorageError

__all__ = ["ScopeKind", "SequenceScope", "SequenceAllocator"]

logger = logging.getLogger(__name__)

SCOPE_KEY_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\d+$")
# scope keys are stored in signed 64-bit INTEGER columns
MAX_SCOPE_KEY: Final[int] = 2**63 - 1

E = TypeVar("E", bound=Entity)


class ScopeKind(str, Enum):
    USER = "user"
    GUILD = "guild"


# scope kind -> (entity kind, scope column, sequence column)
SCOPE_TARGETS: Dict[ScopeKind, Tuple[EntityKind, str, str]] = {
    ScopeKind.USER: (EntityKind.USER_STRIKE, "user_id", "strike_id"),
    ScopeKind.GUILD: (EntityKind.GUILD_TICKET_CHANNEL, "guild_id", "ticket_id"),
}


@dataclass(frozen=True)
class SequenceScope:
    """The (kind, key) domain a sequence number is unique within."""

    kind: ScopeKind
    key: int

    @classmethod
    def parse(cls, kind: Union[ScopeKind, str], key: Union[int, str]) -> "SequenceScope":
        """Build a scope from loosely typed input; chat ids usually arrive as strings."""
        try:
            scope_kind = ScopeKind(kind)
        except ValueError:
            raise InvalidScopeError(f"Unknown scope kind: {kind!r}") from None

        if isinstance(key, bool):
            raise InvalidScopeError(f"Invalid scope key: {key!r}")
        if isinstance(key, str) and SCOPE_KEY_PATTERN.match(key.strip()):
            key = int(key.strip())
        if not isinstance(key, int):
            raise InvalidScopeError(f"Invalid scope key: {key!r}")
        if key < 0:
            raise InvalidScopeError(f"Scope key must not be negative: {key}")
        if key > MAX_SCOPE_KEY:
            raise InvalidScopeError(f"Scope key is out of range: {key}")
        return cls(scope_kind, key)


class SequenceAllocator:
    """Computes ``max(existing ids in scope) + 1``, or 0 for an empty scope.

    The read is not serialised against the caller's insert. Uniqueness is left
    to the store's composite primary key, which turns a lost race into a
    `DuplicateSequenceIDError` instead of a silent overwrite.
    """

    def __init__(self, store: EntityStore, *, max_attempts: int = 3) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._store = store
        self._max_attempts = max_attempts

    async def next_id(self, scope_kind: Union[ScopeKind, str], scope_key: Union[int, str]) -> int:
        scope = SequenceScope.parse(scope_kind, scope_key)
        entity_kind, scope_column, sequence_column = SCOPE_TARGETS[scope.kind]
        try:
            existing = await self._store.query_by_foreign_key(entity_kind, scope_column, scope.key)
        except StorageError as e:
            raise StorageError(f"next_id aborted for scope {scope.kind.value}:{scope.key}") from e
        if not existing:
            return 0
        return max(getattr(e, sequence_column) for e in existing) + 1

    async def insert_with_next_id(
        self,
        scope_kind: Union[ScopeKind, str],
        scope_key: Union[int, str],
        build: Callable[[int], E],
    ) -> E:
        """Allocate an id, build the entity with it and insert it.

        The whole allocate+insert sequence is retried when a concurrent writer
        took the id first.
        """
        scope = SequenceScope.parse(scope_kind, scope_key)
        entity_kind = SCOPE_TARGETS[scope.kind][0]
        attempt = 0
        while True:
            attempt += 1
            next_id = await self.next_id(scope.kind, scope.key)
            entity = build(next_id)
            try:
                await self._store.insert(entity_kind, entity)
            except StorageError as e:
                raise StorageError(
                    f"insert_with_next_id aborted for scope {scope.kind.value}:{scope.key}"
                ) from e
            except DuplicateSequenceIDError:
                logger.warning(
                    "Sequence id %d in scope %s:%d was taken (attempt %d/%d)",
                    next_id,
                    scope.kind.value,
                    scope.key,
                    attempt,
                    self._max_attempts,
                )
                if attempt >= self._max_attempts:
                    raise
            else:
                return entity
