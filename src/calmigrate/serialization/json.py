"""
JSON serialization utilities for calmigrate types.

Progress records and error log entries are persisted as JSON documents. The
encoder here understands the non-native types those records contain: UUIDs,
datetimes, dates and Enum members.

Example:
    >>> from calmigrate.serialization import json_dumps, json_loads
    >>> from uuid import uuid4
    >>>
    >>> data = {"run_id": uuid4()}
    >>> json_str = json_dumps(data)
    >>> parsed = json_loads(json_str)
"""

import json
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID


class CalMigrateJSONEncoder(json.JSONEncoder):
    """
    Custom JSON encoder that handles UUID, datetime, date and Enum objects.

    - UUID objects: Converted to string representation
    - datetime / date objects: Converted to ISO 8601 format string
    - Enum members: Converted to their value
    """

    def default(self, obj: Any) -> Any:
        """
        Convert non-serializable objects to JSON-serializable formats.

        Args:
            obj: Object to serialize

        Returns:
            JSON-serializable representation

        Raises:
            TypeError: If object type is not supported
        """
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, datetime | date):
            return obj.isoformat()
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


def json_dumps(obj: Any) -> str:
    """
    Serialize object to JSON string with UUID, datetime and Enum support.

    Args:
        obj: Object to serialize

    Returns:
        JSON string representation
    """
    return json.dumps(obj, cls=CalMigrateJSONEncoder)


def json_loads(s: str) -> Any:
    """
    Deserialize JSON string to Python object.

    UUID and datetime strings are NOT converted back to their original
    types; the owning model's ``from_dict`` does that.

    Args:
        s: JSON string to deserialize

    Returns:
        Python object representation
    """
    return json.loads(s)


__all__ = [
    "CalMigrateJSONEncoder",
    "json_dumps",
    "json_loads",
]
