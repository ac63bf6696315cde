"""Resolution of joint build record chains.

A chain is one anchor (``is_joint`` false) plus every joint entry that reaches
it by following ``joint_root_id`` one or more times. All members share the
anchor's ``record_id``. Rows are walked in memory, so the resolver works over
any `EntityStore` regardless of recursive query support.
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional, Set

from recordbot.db.models import BuildRecord
from recordbot.db.store import EntityKind, EntityStore
from recordbot.errors import ChainIntegrityError, NotFoundError, StorageError

__all__ = ["ChainResolver"]

logger = logging.getLogger(__name__)


class ChainResolver:
    """Finds the anchor of a chain and the members tied with it."""

    def __init__(self, store: EntityStore, *, max_depth: Optional[int] = None) -> None:
        if max_depth is not None and max_depth < 1:
            raise ValueError("max_depth must be at least 1")
        self._store = store
        self._max_depth = max_depth

    async def _fetch(self, entry_id: int, operation: str) -> Optional[BuildRecord]:
        try:
            return await self._store.get_by_id(EntityKind.BUILD_RECORD, entry_id)
        except StorageError as e:
            raise StorageError(f"{operation} aborted while fetching build record {entry_id}") from e

    def _broken(self, message: str, entry_id: int) -> ChainIntegrityError:
        logger.error("Chain integrity violation at build record %d: %s", entry_id, message)
        return ChainIntegrityError(message, entry_id=entry_id)

    async def find_anchor(self, entry_id: int) -> BuildRecord:
        """Return the original, non-joint holder of the chain containing *entry_id*.

        Raises `NotFoundError` if *entry_id* does not exist, and
        `ChainIntegrityError` on a cycle, a missing or foreign link, or when
        the walk exceeds ``max_depth`` hops.
        """
        entry = await self._fetch(entry_id, "find_anchor")
        if entry is None:
            raise NotFoundError(f"Build record {entry_id} not found")

        visited: Set[int] = {entry_id}
        current = entry
        while current.is_joint:
            if self._max_depth is not None and len(visited) > self._max_depth:
                raise self._broken(f"chain exceeds {self._max_depth} hops", current.id)
            parent_id = current.joint_root_id
            if parent_id is None:
                raise self._broken("joint entry has no root pointer", current.id)
            if parent_id in visited:
                raise self._broken(f"cycle through build record {parent_id}", current.id)

            parent = await self._fetch(parent_id, "find_anchor")
            if parent is None:
                raise self._broken(f"root pointer {parent_id} does not exist", current.id)
            if parent.record_id != entry.record_id:
                raise self._broken(
                    f"root pointer {parent_id} belongs to record {parent.record_id}, not {entry.record_id}",
                    current.id,
                )
            visited.add(parent_id)
            current = parent
        return current

    async def find_chain_members(self, entry_id: int) -> List[BuildRecord]:
        """Return the anchor of *entry_id*'s chain and everything tied with it.

        Members are ordered by ``(created_at, id)``. A chain with no ties
        returns just the anchor.
        """
        anchor = await self.find_anchor(entry_id)
        try:
            candidates = await self._store.query_by_foreign_key(
                EntityKind.BUILD_RECORD, "record_id", anchor.record_id
            )
        except StorageError as e:
            raise StorageError(
                f"find_chain_members aborted while loading record {anchor.record_id}"
            ) from e

        children: Dict[int, List[BuildRecord]] = defaultdict(list)
        for candidate in candidates:
            if candidate.is_joint and candidate.joint_root_id is not None:
                children[candidate.joint_root_id].append(candidate)

        members: Dict[int, BuildRecord] = {anchor.id: anchor}
        queue: Deque[int] = deque([anchor.id])
        while queue:
            parent_id = queue.popleft()
            for child in children.get(parent_id, ()):
                if child.id in members:
                    continue
                members[child.id] = child
                queue.append(child.id)

        return sorted(members.values(), key=lambda e: (e.created_at, e.id))
