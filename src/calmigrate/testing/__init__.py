"""
Testing utilities for calmigrate.

Example:
    >>> from calmigrate.testing import InMemoryMigrationHarness
    >>>
    >>> harness = InMemoryMigrationHarness()
    >>> results = await harness.run_to_completion()
"""

from calmigrate.testing.harness import InMemoryMigrationHarness

__all__ = ["InMemoryMigrationHarness"]
