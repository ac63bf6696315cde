"""Build record submission and moderation on top of the chain resolver."""

from __future__ import annotations

import logging
from typing import List

from recordbot.db.models import BuildRecord, ModerationMark
from recordbot.db.store import EntityKind, EntityStore
from recordbot.errors import DanglingChainReferenceError, NotFoundError, StorageError
from recordbot.utils.timestamps import utcnow

from .chain_resolver import ChainResolver

logger = logging.getLogger(__name__)


class BuildRecordManager:
    """High-level façade for build record operations."""

    def __init__(self, store: EntityStore, resolver: ChainResolver) -> None:
        self._store = store
        self._resolver = resolver

    async def validate_on_insert(self, candidate: BuildRecord) -> None:
        """Reject a joint entry whose root pointer is missing or under another record.

        Non-joint entries are new anchors and always pass.
        """
        if not candidate.is_joint:
            return

        target_id = candidate.joint_root_id
        if target_id is None:
            raise DanglingChainReferenceError("Joint build record has no root pointer")

        try:
            target = await self._store.get_by_id(EntityKind.BUILD_RECORD, target_id)
        except StorageError as e:
            raise StorageError(
                f"validate_on_insert aborted while fetching build record {target_id}"
            ) from e
        if target is None:
            raise DanglingChainReferenceError(
                f"Joint build record points at missing build record {target_id}",
                target_id=target_id,
            )
        if target.record_id != candidate.record_id:
            raise DanglingChainReferenceError(
                f"Build record {target_id} belongs to record {target.record_id}, "
                f"not {candidate.record_id}",
                target_id=target_id,
            )

    async def submit(self, candidate: BuildRecord) -> BuildRecord:
        """Validate and persist *candidate*; return it as stored."""
        await self.validate_on_insert(candidate)
        try:
            entry_id = await self._store.insert(EntityKind.BUILD_RECORD, candidate)
        except StorageError as e:
            raise StorageError(
                f"submit aborted for build {candidate.build_id} under record {candidate.record_id}"
            ) from e
        logger.info(
            "Build record %s stored (build=%d record=%d joint=%s root=%s)",
            entry_id,
            candidate.build_id,
            candidate.record_id,
            candidate.is_joint,
            candidate.joint_root_id,
        )
        return await self.get(entry_id)

    async def submit_tie(self, *, build_id: int, tie_with_id: int, submitter_id: int) -> BuildRecord:
        """Record *build_id* as tying with the chain that contains *tie_with_id*.

        The new entry points straight at the chain's anchor and takes the
        anchor's record.
        """
        anchor = await self._resolver.find_anchor(tie_with_id)
        candidate = BuildRecord(
            build_id=build_id,
            record_id=anchor.record_id,
            is_joint=True,
            joint_root_id=anchor.id,
            submitter_id=submitter_id,
        )
        return await self.submit(candidate)

    async def get(self, entry_id: int) -> BuildRecord:
        try:
            entry = await self._store.get_by_id(EntityKind.BUILD_RECORD, entry_id)
        except StorageError as e:
            raise StorageError(f"get aborted for build record {entry_id}") from e
        if entry is None:
            raise NotFoundError(f"Build record {entry_id} not found")
        return entry

    async def list_for_record(self, record_id: int) -> List[BuildRecord]:
        """Every entry under *record_id*, across all of its chains."""
        try:
            return await self._store.query_by_foreign_key(EntityKind.BUILD_RECORD, "record_id", record_id)
        except StorageError as e:
            raise StorageError(f"list_for_record aborted for record {record_id}") from e

    async def set_verification(self, entry_id: int, verified: bool, *, actor_id: int) -> BuildRecord:
        return await self._mark(entry_id, "verification", verified, actor_id)

    async def set_dispute(self, entry_id: int, disputed: bool, *, actor_id: int) -> BuildRecord:
        return await self._mark(entry_id, "dispute", disputed, actor_id)

    async def _mark(self, entry_id: int, field: str, flagged: bool, actor_id: int) -> BuildRecord:
        entry = await self.get(entry_id)
        now = utcnow()
        mark = ModerationMark(flagged=flagged, actor_id=actor_id, timestamp=now)
        updated = entry.model_copy(update={field: mark, "edited_at": now})
        try:
            stored = await self._store.update(EntityKind.BUILD_RECORD, entry_id, updated)
        except StorageError as e:
            raise StorageError(f"set {field} aborted for build record {entry_id}") from e
        if not stored:
            # deleted between the read and the write
            raise NotFoundError(f"Build record {entry_id} not found")
        logger.info("Build record %d %s set to %s by %d", entry_id, field, flagged, actor_id)
        return updated

    async def remove(self, entry_id: int) -> BuildRecord:
        """Delete an entry. Entries that tied with it are left pointing at nothing."""
        entry = await self.get(entry_id)
        try:
            deleted = await self._store.delete(EntityKind.BUILD_RECORD, entry_id)
        except StorageError as e:
            raise StorageError(f"remove aborted for build record {entry_id}") from e
        if not deleted:
            raise NotFoundError(f"Build record {entry_id} not found")
        logger.info("Build record %d removed", entry_id)
        return entry
