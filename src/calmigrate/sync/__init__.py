"""
Synchronous adapter for the migration orchestrator.

Example:
    >>> from calmigrate.sync import SyncMigrationAdapter
    >>>
    >>> adapter = SyncMigrationAdapter(orchestrator, timeout=30.0)
    >>> result = adapter.advance_sync()
    >>> result.to_response()
"""

from calmigrate.sync.adapter import SyncMigrationAdapter

__all__ = ["SyncMigrationAdapter"]
