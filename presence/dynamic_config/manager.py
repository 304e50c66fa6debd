"""
Dynamic configuration manager with memory caching and database synchronization.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Type, TypeVar

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..errors import ConfigurationError
from ..models import DynamicConfig
from .migration import ConfigMigrator
from .schemas import BaseConfigSchema

logger = logging.getLogger("presence.dynamic_config")

SchemaT = TypeVar("SchemaT", bound=BaseConfigSchema)


class ConfigManager:
    """
    Central manager for dynamic configuration with memory caching.

    Features:
    - In-memory configuration caching
    - Database persistence
    - Automatic schema migration on startup
    - Configuration validation

    Each module's configuration is an immutable schema instance. Updates swap
    the cached instance in a single assignment, so readers never observe a
    half-applied change.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize the configuration manager.

        Args:
            session_factory: Factory for database sessions used for persistence
        """
        self._session_factory = session_factory
        self._configs: Dict[str, BaseConfigSchema] = {}
        self._schemas: Dict[str, Type[BaseConfigSchema]] = {}
        self._initialized = False

    def register_config(
        self, module_name: str, schema_cls: Type[BaseConfigSchema]
    ) -> None:
        """
        Register a configuration schema for a module.

        The module is usable immediately with default values; initialization
        replaces them with the persisted ones.

        Raises:
            ValueError: If module_name already registered or schema_cls invalid
        """
        if not issubclass(schema_cls, BaseConfigSchema):
            raise ValueError(
                f"Schema class {schema_cls} must inherit from BaseConfigSchema"
            )

        if module_name in self._schemas:
            raise ValueError(
                f"Configuration module '{module_name}' is already registered"
            )

        self._schemas[module_name] = schema_cls
        self._configs[module_name] = schema_cls()
        logger.info(
            f"Registered configuration schema for module '{module_name}': {schema_cls.__name__}"
        )

    async def initialize_all_configs(self) -> None:
        """
        Load, migrate and cache every registered configuration.

        Modules without a stored row get one with default values.
        Should be called once during startup, after the tables exist.
        """
        if self._initialized:
            logger.warning("ConfigManager already initialized, skipping...")
            return

        logger.info(f"Initializing {len(self._schemas)} configuration modules...")

        async with self._session_factory() as session:
            result = await session.execute(select(DynamicConfig))
            existing_configs = {
                config.module_name: config for config in result.scalars().all()
            }

            for module_name, schema_cls in self._schemas.items():
                if module_name in existing_configs:
                    self._load_and_migrate_config(
                        module_name, schema_cls, existing_configs[module_name]
                    )
                else:
                    self._create_default_config(session, module_name, schema_cls)

            await session.commit()

        self._initialized = True
        logger.info("All configurations initialized successfully")

    def _load_and_migrate_config(
        self,
        module_name: str,
        schema_cls: Type[BaseConfigSchema],
        db_config: DynamicConfig,
    ) -> None:
        migrated_data, migration_messages = ConfigMigrator.migrate_config(
            db_config.config_data, schema_cls, db_config.config_schema_version
        )

        for message in migration_messages:
            logger.info(f"Migration '{module_name}': {message}")

        self._configs[module_name] = schema_cls.model_validate(migrated_data)

        current_version = schema_cls.get_schema_version()
        if db_config.config_schema_version != current_version or migration_messages:
            db_config.config_data = migrated_data
            db_config.config_schema_version = current_version
            db_config.updated_at = datetime.now(timezone.utc)
            logger.info(
                f"Updated database configuration for module '{module_name}' to version {current_version}"
            )

    def _create_default_config(
        self,
        session: AsyncSession,
        module_name: str,
        schema_cls: Type[BaseConfigSchema],
    ) -> None:
        logger.info(f"Creating default configuration for new module '{module_name}'")

        default_data = ConfigMigrator.create_default_config(schema_cls)
        self._configs[module_name] = schema_cls.model_validate(default_data)

        session.add(
            DynamicConfig(
                module_name=module_name,
                config_data=default_data,
                config_schema_version=schema_cls.get_schema_version(),
                updated_at=datetime.now(timezone.utc),
            )
        )

    async def update_config(
        self, module_name: str, changes: Dict[str, Any]
    ) -> BaseConfigSchema:
        """
        Apply a partial update to a module's configuration.

        Args:
            module_name: Module name to update
            changes: Fields to change; other fields keep their current values

        Returns:
            Updated configuration instance

        Raises:
            ConfigurationError: If the module is unknown or a value is invalid
        """
        if module_name not in self._schemas:
            raise ConfigurationError(f"Module '{module_name}' not registered")

        schema_cls = self._schemas[module_name]
        new_data = {**self._configs[module_name].model_dump(), **changes}

        try:
            new_config_instance = schema_cls.model_validate(new_data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration data for module '{module_name}': {e}"
            ) from e

        new_data = new_config_instance.model_dump()
        async with self._session_factory() as session:
            result = await session.execute(
                select(DynamicConfig).where(DynamicConfig.module_name == module_name)
            )
            db_config = result.scalar_one_or_none()

            if db_config:
                db_config.config_data = new_data
                db_config.config_schema_version = schema_cls.get_schema_version()
                db_config.updated_at = datetime.now(timezone.utc)
            else:
                session.add(
                    DynamicConfig(
                        module_name=module_name,
                        config_data=new_data,
                        config_schema_version=schema_cls.get_schema_version(),
                        updated_at=datetime.now(timezone.utc),
                    )
                )

            await session.commit()

        self._configs[module_name] = new_config_instance

        logger.info(f"Updated configuration for module '{module_name}': {changes}")
        return new_config_instance

    def get_config(self, module_name: str) -> BaseConfigSchema:
        """
        Get the current configuration instance for a module.

        Raises:
            ValueError: If module not registered
        """
        if module_name not in self._configs:
            raise ValueError(f"Configuration for module '{module_name}' not found")

        return self._configs[module_name]

    def get_typed(self, module_name: str, schema_cls: Type[SchemaT]) -> SchemaT:
        """Get a module's configuration, checked against the expected schema."""
        config = self.get_config(module_name)
        if not isinstance(config, schema_cls):
            raise TypeError(
                f"Configuration '{module_name}' is {type(config).__name__}, not {schema_cls.__name__}"
            )
        return config

    async def reset_config(self, module_name: str) -> BaseConfigSchema:
        """Reset a module's configuration to default values."""
        if module_name not in self._schemas:
            raise ConfigurationError(f"Module '{module_name}' not registered")

        default_data = ConfigMigrator.create_default_config(self._schemas[module_name])
        return await self.update_config(module_name, default_data)
