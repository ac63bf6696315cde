"""SQLite implementation of the entity store using aiosqlite."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple, Type

import aiosqlite

from recordbot.errors import DuplicateSequenceIDError, StorageError

from .connection import Database
from .models import BuildRecord, GuildTicketChannel, UserStrike
from .store import Entity, EntityKey, EntityKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TableSpec:
    """How one entity kind maps onto its table."""

    table: str
    model: Type[Any]
    key_columns: Tuple[str, ...]
    foreign_keys: FrozenSet[str]
    autoincrement: bool = False
    sequence_scoped: bool = False

    def key_values(self, key: EntityKey) -> Tuple[int, ...]:
        values = key if isinstance(key, tuple) else (key,)
        if len(values) != len(self.key_columns):
            raise ValueError(f"{self.table} key must have {len(self.key_columns)} part(s), got {key!r}")
        return tuple(values)

    def key_of(self, row: Mapping[str, Any]) -> EntityKey:
        values = tuple(row[c] for c in self.key_columns)
        return values[0] if len(values) == 1 else values

    def where_key(self) -> str:
        return " AND ".join(f"{c} = ?" for c in self.key_columns)


TABLES: Dict[EntityKind, TableSpec] = {
    EntityKind.BUILD_RECORD: TableSpec(
        table="build_records",
        model=BuildRecord,
        key_columns=("id",),
        foreign_keys=frozenset({"build_id", "record_id", "joint_root_id", "submitter_id"}),
        autoincrement=True,
    ),
    EntityKind.USER_STRIKE: TableSpec(
        table="user_strikes",
        model=UserStrike,
        key_columns=("user_id", "strike_id"),
        foreign_keys=frozenset({"user_id", "author_id"}),
        sequence_scoped=True,
    ),
    EntityKind.GUILD_TICKET_CHANNEL: TableSpec(
        table="guild_ticket_channels",
        model=GuildTicketChannel,
        key_columns=("guild_id", "ticket_id"),
        foreign_keys=frozenset({"guild_id", "channel_id", "creator_id"}),
        sequence_scoped=True,
    ),
}


class SQLiteEntityStore:
    """SQLite implementation of `EntityStore`."""

    def __init__(self, database: Database) -> None:
        self._db = database

    @staticmethod
    def _spec(kind: EntityKind) -> TableSpec:
        return TABLES[EntityKind(kind)]

    async def get_by_id(self, kind: EntityKind, key: EntityKey) -> Optional[Entity]:
        """Retrieve one entity by primary key, or None if it has no row."""
        spec = self._spec(kind)
        params = spec.key_values(key)
        try:
            async with self._db.connection() as conn:
                cursor = await conn.execute(
                    f"SELECT * FROM {spec.table} WHERE {spec.where_key()}",
                    params,
                )
                row = await cursor.fetchone()
                if row:
                    return spec.model.from_row(row)
                return None
        except aiosqlite.Error as e:
            logger.exception("Failed to get %s %r: %s", spec.table, key, e)
            raise StorageError(f"failed to get {spec.table} {key!r}") from e

    async def query_by_foreign_key(self, kind: EntityKind, fk_name: str, fk_value: int) -> List[Entity]:
        """List every entity whose *fk_name* column equals *fk_value*."""
        spec = self._spec(kind)
        if fk_name not in spec.foreign_keys:
            raise ValueError(f"{fk_name!r} is not a foreign key of {spec.table}")
        order_by = ", ".join(spec.key_columns)
        try:
            async with self._db.connection() as conn:
                cursor = await conn.execute(
                    f"SELECT * FROM {spec.table} WHERE {fk_name} = ? ORDER BY {order_by}",
                    (fk_value,),
                )
                rows = await cursor.fetchall()
                return [spec.model.from_row(row) for row in rows]
        except aiosqlite.Error as e:
            logger.exception("Failed to query %s by %s=%r: %s", spec.table, fk_name, fk_value, e)
            raise StorageError(f"failed to query {spec.table} by {fk_name}") from e

    async def list_all(self, kind: EntityKind) -> List[Entity]:
        """Every row of *kind*, ordered by primary key."""
        spec = self._spec(kind)
        order_by = ", ".join(spec.key_columns)
        try:
            async with self._db.connection() as conn:
                cursor = await conn.execute(f"SELECT * FROM {spec.table} ORDER BY {order_by}")
                rows = await cursor.fetchall()
                return [spec.model.from_row(row) for row in rows]
        except aiosqlite.Error as e:
            logger.exception("Failed to list %s: %s", spec.table, e)
            raise StorageError(f"failed to list {spec.table}") from e

    async def insert(self, kind: EntityKind, entity: Entity) -> EntityKey:
        """Insert *entity* and return its key (assigned by SQLite for build records)."""
        spec = self._spec(kind)
        row = entity.to_row()
        if spec.autoincrement and row.get("id") is None:
            row.pop("id", None)
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        try:
            async with self._db.connection() as conn:
                try:
                    cursor = await conn.execute(
                        f"INSERT INTO {spec.table} ({columns}) VALUES ({placeholders})",
                        tuple(row.values()),
                    )
                    await conn.commit()
                except aiosqlite.IntegrityError as e:
                    await conn.rollback()
                    if spec.sequence_scoped:
                        logger.warning("Duplicate %s key %r", spec.table, spec.key_of(row))
                        raise DuplicateSequenceIDError(
                            f"{spec.table} already holds {spec.key_of(row)!r}"
                        ) from e
                    raise
                if spec.autoincrement:
                    return cursor.lastrowid
                return spec.key_of(row)
        except aiosqlite.Error as e:
            logger.exception("Failed to insert into %s: %s", spec.table, e)
            raise StorageError(f"failed to insert into {spec.table}") from e

    async def update(self, kind: EntityKind, key: EntityKey, entity: Entity) -> bool:
        """Overwrite the non-key columns of the row at *key*. False if there is none."""
        spec = self._spec(kind)
        params = spec.key_values(key)
        row = entity.to_row()
        for column in spec.key_columns:
            row.pop(column, None)
        assignments = ", ".join(f"{c} = ?" for c in row)
        try:
            async with self._db.connection() as conn:
                cursor = await conn.execute(
                    f"UPDATE {spec.table} SET {assignments} WHERE {spec.where_key()}",
                    (*row.values(), *params),
                )
                await conn.commit()
                return cursor.rowcount > 0
        except aiosqlite.Error as e:
            logger.exception("Failed to update %s %r: %s", spec.table, key, e)
            raise StorageError(f"failed to update {spec.table} {key!r}") from e

    async def delete(self, kind: EntityKind, key: EntityKey) -> bool:
        """Delete the row at *key*. False if there is none."""
        spec = self._spec(kind)
        params = spec.key_values(key)
        try:
            async with self._db.connection() as conn:
                cursor = await conn.execute(
                    f"DELETE FROM {spec.table} WHERE {spec.where_key()}",
                    params,
                )
                await conn.commit()
                return cursor.rowcount > 0
        except aiosqlite.Error as e:
            logger.exception("Failed to delete %s %r: %s", spec.table, key, e)
            raise StorageError(f"failed to delete {spec.table} {key!r}") from e
