"""
This file contains shared fixtures for the test suite.
"""

import os
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

# Set env vars before any application modules are imported
os.environ.setdefault("TEST_MODE", "1")
os.environ.setdefault("DATABASE_PATH", ":memory:")

from recordbot.config import AppSettings, ChainSettings, DatabaseSettings, SequenceSettings
from recordbot.core import (
    BuildRecordManager,
    ChainResolver,
    SequenceAllocator,
    StrikeManager,
    TicketManager,
)
from recordbot.db.connection import Database
from recordbot.db.models import BuildRecord
from recordbot.db.repositories import SQLiteEntityStore
from recordbot.db.store import EntityKind

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def test_settings():
    """In-memory configuration independent of the environment."""
    return AppSettings(
        debug=True,
        log_level="DEBUG",
        db=DatabaseSettings(path=":memory:"),
        chains=ChainSettings(),
        sequences=SequenceSettings(),
    )


@pytest_asyncio.fixture
async def database():
    """Fresh in-memory SQLite database per test."""
    db = await Database.open(":memory:")
    yield db
    await db.close()


@pytest.fixture
def store(database):
    return SQLiteEntityStore(database)


@pytest.fixture
def allocator(store):
    return SequenceAllocator(store)


@pytest.fixture
def resolver(store):
    return ChainResolver(store)


@pytest.fixture
def build_records(store, resolver):
    return BuildRecordManager(store, resolver)


@pytest.fixture
def strikes(store, allocator):
    return StrikeManager(store, allocator)


@pytest.fixture
def tickets(store, allocator):
    return TicketManager(store, allocator)


@pytest.fixture
def insert_entry(store):
    """
    Insert a build record straight through the store, bypassing validation,
    so tests can shape arbitrary (including corrupt) chains.

    Entries get increasing ``created_at`` values in insertion order.
    """
    counter = {"n": 0}

    async def factory(
        record_id: int = 10,
        *,
        joint_root_id=None,
        build_id: int = 1,
        entry_id=None,
        submitter_id: int = 500,
    ) -> BuildRecord:
        counter["n"] += 1
        stamp = BASE_TIME + timedelta(minutes=counter["n"])
        entry = BuildRecord(
            id=entry_id,
            build_id=build_id,
            record_id=record_id,
            is_joint=joint_root_id is not None,
            joint_root_id=joint_root_id,
            submitter_id=submitter_id,
            created_at=stamp,
            edited_at=stamp,
        )
        new_id = await store.insert(EntityKind.BUILD_RECORD, entry)
        return entry.model_copy(update={"id": new_id})

    return factory
