"""
Tests for the dynamic configuration system with the watchdog configuration.
"""

from datetime import datetime, timezone

import pytest
from pydantic import Field, ValidationError
from sqlalchemy import select

from presence.db.database import create_engine, create_session_factory, init_db
from presence.dynamic_config import (
    SESSION_TIMEOUT_FLOOR_MS,
    WATCHDOG_MODULE,
    BaseConfigSchema,
    ConfigManager,
    WatchdogConfig,
)
from presence.dynamic_config.migration import ConfigMigrator
from presence.errors import ConfigurationError
from presence.models import DynamicConfig

from ..fixtures.presence_env import temp_database_url


class OtherConfig(BaseConfigSchema):
    label: str = Field(default="default", description="A label")


@pytest.fixture
async def config_db():
    """Temporary database with the tables created."""
    database_url, path = temp_database_url()
    engine = create_engine(database_url)
    await init_db(engine)
    yield create_session_factory(engine)
    await engine.dispose()
    path.unlink(missing_ok=True)


class TestWatchdogConfig:
    """Defaults and floors of the watchdog configuration."""

    def test_defaults(self):
        config = WatchdogConfig()
        assert config.heartbeat_interval_ms == 60_000
        assert config.session_timeout_ms == 180_000
        assert config.poll_interval_ms == 60_000
        assert config.max_consecutive_failures == 3

    def test_session_timeout_floor(self):
        WatchdogConfig(session_timeout_ms=SESSION_TIMEOUT_FLOOR_MS)
        with pytest.raises(ValidationError):
            WatchdogConfig(session_timeout_ms=500)

    def test_instances_are_immutable(self):
        config = WatchdogConfig()
        with pytest.raises(ValidationError):
            config.session_timeout_ms = 20_000

    def test_schema_version_is_stable(self):
        version = WatchdogConfig.get_schema_version()
        assert len(version) == 16
        assert version == WatchdogConfig.get_schema_version()
        assert version != OtherConfig.get_schema_version()


class TestConfigMigrator:
    """Bringing stored data in line with the schema."""

    def test_same_version_is_untouched(self):
        data = WatchdogConfig().model_dump()
        migrated, messages = ConfigMigrator.migrate_config(
            data, WatchdogConfig, WatchdogConfig.get_schema_version()
        )
        assert migrated == data
        assert messages == []

    def test_unknown_fields_dropped_and_missing_filled(self):
        migrated, messages = ConfigMigrator.migrate_config(
            {"session_timeout_ms": 90_000, "legacy_flag": True},
            WatchdogConfig,
            "old-version",
        )

        assert migrated["session_timeout_ms"] == 90_000
        assert migrated["poll_interval_ms"] == 60_000
        assert "legacy_flag" not in migrated
        assert any("legacy_flag" in m for m in messages)

    def test_invalid_values_reset_to_default(self):
        migrated, messages = ConfigMigrator.migrate_config(
            {"session_timeout_ms": 500, "poll_interval_ms": 5_000},
            WatchdogConfig,
            "old-version",
        )

        assert migrated["session_timeout_ms"] == 180_000
        assert migrated["poll_interval_ms"] == 5_000
        assert any("session_timeout_ms" in m for m in messages)


class TestConfigManager:
    """Caching, persistence and updates."""

    def test_register_twice_raises(self):
        manager = ConfigManager(session_factory=None)
        manager.register_config(WATCHDOG_MODULE, WatchdogConfig)
        with pytest.raises(ValueError):
            manager.register_config(WATCHDOG_MODULE, WatchdogConfig)

    def test_defaults_available_before_initialization(self):
        manager = ConfigManager(session_factory=None)
        manager.register_config(WATCHDOG_MODULE, WatchdogConfig)
        assert manager.get_typed(WATCHDOG_MODULE, WatchdogConfig) == WatchdogConfig()

    def test_get_typed_checks_schema(self):
        manager = ConfigManager(session_factory=None)
        manager.register_config("other", OtherConfig)
        with pytest.raises(TypeError):
            manager.get_typed("other", WatchdogConfig)
        with pytest.raises(ValueError):
            manager.get_config("missing")

    @pytest.mark.asyncio
    async def test_initialize_creates_default_rows(self, config_db):
        manager = ConfigManager(config_db)
        manager.register_config(WATCHDOG_MODULE, WatchdogConfig)
        await manager.initialize_all_configs()

        async with config_db() as session:
            row = (
                await session.execute(
                    select(DynamicConfig).where(DynamicConfig.module_name == WATCHDOG_MODULE)
                )
            ).scalar_one()
        assert row.config_data == WatchdogConfig().model_dump()
        assert row.config_schema_version == WatchdogConfig.get_schema_version()

    @pytest.mark.asyncio
    async def test_update_persists_across_managers(self, config_db):
        manager = ConfigManager(config_db)
        manager.register_config(WATCHDOG_MODULE, WatchdogConfig)
        await manager.initialize_all_configs()

        updated = await manager.update_config(WATCHDOG_MODULE, {"session_timeout_ms": 60_000})
        assert updated.session_timeout_ms == 60_000
        assert updated.poll_interval_ms == 60_000

        fresh = ConfigManager(config_db)
        fresh.register_config(WATCHDOG_MODULE, WatchdogConfig)
        await fresh.initialize_all_configs()
        assert fresh.get_typed(WATCHDOG_MODULE, WatchdogConfig).session_timeout_ms == 60_000

    @pytest.mark.asyncio
    async def test_invalid_update_keeps_previous_config(self, config_db):
        manager = ConfigManager(config_db)
        manager.register_config(WATCHDOG_MODULE, WatchdogConfig)
        await manager.initialize_all_configs()
        before = manager.get_config(WATCHDOG_MODULE)

        with pytest.raises(ConfigurationError):
            await manager.update_config(WATCHDOG_MODULE, {"session_timeout_ms": 500})
        with pytest.raises(ConfigurationError):
            await manager.update_config("missing", {})

        assert manager.get_config(WATCHDOG_MODULE) is before

    @pytest.mark.asyncio
    async def test_reset_restores_defaults(self, config_db):
        manager = ConfigManager(config_db)
        manager.register_config(WATCHDOG_MODULE, WatchdogConfig)
        await manager.initialize_all_configs()
        await manager.update_config(WATCHDOG_MODULE, {"max_consecutive_failures": 9})

        reset = await manager.reset_config(WATCHDOG_MODULE)

        assert reset == WatchdogConfig()

    @pytest.mark.asyncio
    async def test_stored_config_from_old_schema_is_migrated(self, config_db):
        async with config_db() as session:
            session.add(
                DynamicConfig(
                    module_name=WATCHDOG_MODULE,
                    config_data={"session_timeout_ms": 1_000, "heartbeat_interval_ms": 45_000},
                    config_schema_version="0000000000000000",
                    updated_at=datetime.now(timezone.utc),
                )
            )
            await session.commit()

        manager = ConfigManager(config_db)
        manager.register_config(WATCHDOG_MODULE, WatchdogConfig)
        await manager.initialize_all_configs()

        config = manager.get_typed(WATCHDOG_MODULE, WatchdogConfig)
        assert config.heartbeat_interval_ms == 45_000
        assert config.session_timeout_ms == 180_000

        async with config_db() as session:
            row = (
                await session.execute(
                    select(DynamicConfig).where(DynamicConfig.module_name == WATCHDOG_MODULE)
                )
            ).scalar_one()
        assert row.config_schema_version == WatchdogConfig.get_schema_version()
