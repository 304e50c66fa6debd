"""
Dynamic configuration schemas with structural versioning.
"""

import hashlib
import json

from pydantic import BaseModel, ConfigDict
from pydantic_core import PydanticUndefined


class BaseConfigSchema(BaseModel):
    """
    Base class for all dynamic configuration schemas.

    Instances are immutable; an update replaces the whole instance, so a
    reader always sees one consistent configuration.
    """

    model_config = ConfigDict(frozen=True, validate_default=True)

    @classmethod
    def get_schema_version(cls) -> str:
        """
        Generate a version hash based on the model's field structure.

        The hash changes when fields are added or removed, or when their
        types or defaults change.

        Returns:
            First 16 hex chars of the SHA256 of the model structure
        """
        fields_info = {}
        for field_name, field_info in cls.model_fields.items():
            default_str = None
            if field_info.default is not PydanticUndefined:
                default_str = str(field_info.default)

            fields_info[field_name] = {
                "annotation": str(field_info.annotation),
                "default": default_str,
                "required": field_info.is_required(),
            }

        version_data = json.dumps(fields_info, sort_keys=True)
        return hashlib.sha256(version_data.encode()).hexdigest()[:16]
