"""Tests for settings loading and service wiring."""

import logging
import sys
from unittest.mock import patch

import pytest

from recordbot.config import AppSettings, ChainSettings, DatabaseSettings, get_settings
from recordbot.core import BuildRecordManager, ChainResolver
from recordbot.db.models import BuildRecord
from recordbot.services import configure_logging, create_services


def test_test_mode_settings():
    get_settings.cache_clear()
    try:
        settings = get_settings()
    finally:
        get_settings.cache_clear()

    assert settings.db.path == ":memory:"
    assert settings.log_level_value == logging.DEBUG


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("DATABASE_PATH", "/tmp/other.db")
    monkeypatch.setenv("DATABASE_POOL_SIZE", "3")
    monkeypatch.setenv("CHAIN_MAX_DEPTH", "50")
    monkeypatch.setenv("SEQUENCE_MAX_ATTEMPTS", "7")

    settings = AppSettings()

    assert settings.db.path == "/tmp/other.db"
    assert settings.db.pool_size == 3
    assert settings.chains.max_depth == 50
    assert settings.sequences.max_attempts == 7


def test_configure_logging_uses_settings_level():
    settings = AppSettings(log_level="WARNING")

    with patch("recordbot.services.logging.basicConfig") as basic_config:
        configure_logging(settings)

    basic_config.assert_called_once_with(
        level=logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stdout,
    )


def test_invalid_settings_are_rejected():
    with pytest.raises(ValueError):
        DatabaseSettings(pool_size=0)
    with pytest.raises(ValueError):
        ChainSettings(max_depth=0)


@pytest.mark.asyncio
async def test_services_share_one_store(test_settings):
    with patch("recordbot.services.logging.basicConfig") as basic_config:
        services = await create_services(test_settings)
    basic_config.assert_called_once()
    try:
        assert isinstance(services.build_records, BuildRecordManager)
        assert isinstance(services.resolver, ChainResolver)

        anchor = await services.build_records.submit(
            BuildRecord(build_id=1, record_id=10, submitter_id=5)
        )
        tie = await services.build_records.submit_tie(build_id=2, tie_with_id=anchor.id, submitter_id=6)
        members = await services.resolver.find_chain_members(tie.id)
        assert [m.id for m in members] == [anchor.id, tie.id]

        strike = await services.strikes.give_strike(42, reason="spam", author_id=1)
        assert await services.allocator.next_id("user", "42") == strike.strike_id + 1
    finally:
        await services.close()

    assert services.database.is_open is False
