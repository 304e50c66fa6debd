"""
Configuration migration between schema versions.
"""

import logging
from typing import Any, Dict, List, Tuple, Type

from pydantic import ValidationError

from .schemas import BaseConfigSchema

logger = logging.getLogger("presence.dynamic_config")


class ConfigMigrator:
    """Brings stored configuration data in line with the current schema."""

    @staticmethod
    def migrate_config(
        current_data: Dict[str, Any],
        schema_cls: Type[BaseConfigSchema],
        stored_version: str,
    ) -> Tuple[Dict[str, Any], List[str]]:
        """
        Migrate configuration data to match the current schema.

        Unknown keys are dropped and missing keys take their defaults. Stored
        values that no longer validate (for instance a value below a newly
        raised floor) are reset to the default and reported.

        Args:
            current_data: Configuration data from the database
            schema_cls: Target schema class
            stored_version: Version of the stored configuration

        Returns:
            Tuple of (migrated_data, migration_messages)
        """
        current_version = schema_cls.get_schema_version()
        migration_messages: List[str] = []

        if stored_version == current_version:
            return current_data, migration_messages

        migration_messages.append(
            f"Migrating {schema_cls.__name__} from version {stored_version} to {current_version}"
        )

        known = {k: v for k, v in current_data.items() if k in schema_cls.model_fields}
        for dropped in sorted(set(current_data) - set(known)):
            migration_messages.append(f"Dropped unknown field '{dropped}'")

        try:
            migrated = schema_cls.model_validate(known)
        except ValidationError as e:
            bad_fields = {str(err["loc"][0]) for err in e.errors() if err["loc"]}
            for field in sorted(bad_fields):
                migration_messages.append(
                    f"Reset invalid value for '{field}' to its default"
                )
            migrated = schema_cls.model_validate(
                {k: v for k, v in known.items() if k not in bad_fields}
            )

        return migrated.model_dump(), migration_messages

    @staticmethod
    def create_default_config(schema_cls: Type[BaseConfigSchema]) -> Dict[str, Any]:
        """Return the schema's defaults as a plain dictionary."""
        return schema_cls().model_dump()
