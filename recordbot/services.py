"""Composition root: opens the database once and wires the core around it."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import Optional

from recordbot.config import AppSettings, get_settings
from recordbot.core import (
    BuildRecordManager,
    ChainResolver,
    SequenceAllocator,
    StrikeManager,
    TicketManager,
)
from recordbot.db.connection import Database
from recordbot.db.repositories import SQLiteEntityStore

logger = logging.getLogger(__name__)


def configure_logging(settings: AppSettings) -> None:
    """Root logger setup; a no-op when the host application already configured one."""
    logging.basicConfig(
        level=settings.log_level_value,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )


@dataclass
class RecordServices:
    """Everything the command layer needs, sharing one store."""

    database: Database
    store: SQLiteEntityStore
    allocator: SequenceAllocator
    resolver: ChainResolver
    build_records: BuildRecordManager
    strikes: StrikeManager
    tickets: TicketManager

    async def close(self) -> None:
        await self.database.close()


async def create_services(settings: Optional[AppSettings] = None) -> RecordServices:
    """Open the database described by *settings* and build the core on it.

    Raises `DatabaseInitError` if the database cannot be opened.
    """
    settings = settings or get_settings()
    configure_logging(settings)
    database = await Database.open(
        settings.db.path,
        pool_size=settings.db.pool_size,
        pool_timeout=settings.db.pool_timeout,
    )
    store = SQLiteEntityStore(database)
    allocator = SequenceAllocator(store, max_attempts=settings.sequences.max_attempts)
    resolver = ChainResolver(store, max_depth=settings.chains.max_depth)
    logger.info("Record services ready (database=%s)", settings.db.path)
    return RecordServices(
        database=database,
        store=store,
        allocator=allocator,
        resolver=resolver,
        build_records=BuildRecordManager(store, resolver),
        strikes=StrikeManager(store, allocator),
        tickets=TicketManager(store, allocator),
    )
