"""
Serialization utilities for calmigrate.

Example:
    >>> from calmigrate.serialization import json_dumps
    >>> from uuid import uuid4
    >>>
    >>> json_str = json_dumps({"run_id": uuid4()})
"""

from calmigrate.serialization.json import (
    CalMigrateJSONEncoder,
    json_dumps,
    json_loads,
)

__all__ = [
    "CalMigrateJSONEncoder",
    "json_dumps",
    "json_loads",
]
