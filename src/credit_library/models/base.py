from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, Optional

from pydantic import BaseModel, ConfigDict


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DBSerializableModel(BaseModel):
    """
    Base Pydantic model that knows how to serialize itself for DB persistence.

    Enum fields are stored as their plain values so documents can be written
    by the MongoDB driver without custom codecs.
    """

    model_config = ConfigDict(use_enum_values=True)

    # Logical collection name; subclasses should override
    collection_name: ClassVar[str]

    # Optional explicit primary key field; defaults to "id" if present
    primary_key: ClassVar[Optional[str]] = "id"

    def serialize_for_db(self) -> Dict[str, Any]:
        """
        Convert to a dict suitable for DB persistence.

        This is the single place to control how models are stored;
        DB adapters can still post-process this if needed.
        """
        return self.model_dump(by_alias=True, exclude_none=True)
