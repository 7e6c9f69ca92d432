"""
Configuration for the calendar migration engine.

MigrationConfig is a frozen dataclass validated on construction. Per-stage
values (batch size, claim policy) fall back to the defaults below for any
stage that is not overridden.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from calmigrate.models import Stage


class ClaimPolicy(Enum):
    """
    What a stage does with claims abandoned by a crashed call.

    A claim that was never confirmed or skipped and is older than
    ``MigrationConfig.stale_claim_seconds`` is considered abandoned.
    """

    RETRY = "retry"
    """Re-own the claim and process the row again (at-least-once)."""

    COUNT_AS_DONE = "count_as_done"
    """Turn the claim into a skip marker and log it (at-most-once)."""


DEFAULT_BATCH_SIZES: dict[Stage, int] = {
    Stage.VENUES: 50,
    Stage.TAGS: 100,
    Stage.EVENTS: 10,
    Stage.CATEGORIES: 100,
    Stage.TICKETS: 20,
    Stage.ORDERS: 20,
    Stage.ATTENDEES: 20,
}

# Venues and terms deduplicate on write, so replaying them is harmless.
DEFAULT_CLAIM_POLICIES: dict[Stage, ClaimPolicy] = {
    Stage.VENUES: ClaimPolicy.RETRY,
    Stage.TAGS: ClaimPolicy.RETRY,
    Stage.EVENTS: ClaimPolicy.COUNT_AS_DONE,
    Stage.CATEGORIES: ClaimPolicy.RETRY,
    Stage.TICKETS: ClaimPolicy.COUNT_AS_DONE,
    Stage.ORDERS: ClaimPolicy.COUNT_AS_DONE,
    Stage.ATTENDEES: ClaimPolicy.COUNT_AS_DONE,
}


@dataclass(frozen=True)
class MigrationConfig:
    """
    Configuration for a migration run.

    Attributes:
        batch_sizes: Rows processed per call, per stage. Stages that are not
            listed use DEFAULT_BATCH_SIZES.
        claim_policies: Stale claim handling, per stage. Stages that are not
            listed use DEFAULT_CLAIM_POLICIES.
        stale_claim_seconds: Age after which an unconfirmed claim is
            considered abandoned. Younger claims may belong to a call that
            is still running and are left alone.
        scan_page_size: Page size when scanning source IDs for rows that
            have no tracking record yet.
        drop_tracking_on_complete: Drop the tracking tables once the run
            completes and the relationships have been rebuilt.
        default_calendar_name: Name of the target calendar events land in.
    """

    batch_sizes: dict[Stage, int] = field(default_factory=dict)
    claim_policies: dict[Stage, ClaimPolicy] = field(default_factory=dict)
    stale_claim_seconds: float = 300.0
    scan_page_size: int = 500
    drop_tracking_on_complete: bool = True
    default_calendar_name: str = "Default"

    def __post_init__(self) -> None:
        """Validate configuration values."""
        for stage, size in self.batch_sizes.items():
            if stage.is_terminal:
                raise ValueError("batch_sizes cannot configure the complete stage")
            if size < 1:
                raise ValueError(f"batch size for {stage.value} must be >= 1, got {size}")

        for stage in self.claim_policies:
            if stage.is_terminal:
                raise ValueError("claim_policies cannot configure the complete stage")

        if self.stale_claim_seconds <= 0:
            raise ValueError(f"stale_claim_seconds must be > 0, got {self.stale_claim_seconds}")

        if self.scan_page_size < 1:
            raise ValueError(f"scan_page_size must be >= 1, got {self.scan_page_size}")

        if not self.default_calendar_name.strip():
            raise ValueError("default_calendar_name must not be empty")

    def batch_size_for(self, stage: Stage) -> int:
        """
        Get the batch size for a stage.

        Args:
            stage: Working stage

        Returns:
            Configured batch size, or the stage default.
        """
        return self.batch_sizes.get(stage, DEFAULT_BATCH_SIZES[stage])

    def claim_policy_for(self, stage: Stage) -> ClaimPolicy:
        """
        Get the stale claim policy for a stage.

        Args:
            stage: Working stage

        Returns:
            Configured policy, or the stage default.
        """
        return self.claim_policies.get(stage, DEFAULT_CLAIM_POLICIES[stage])

    def with_batch_size(self, stage: Stage, size: int) -> MigrationConfig:
        """Return a copy with one stage's batch size replaced."""
        return dataclasses.replace(self, batch_sizes={**self.batch_sizes, stage: size})

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary for JSON storage.

        Returns:
            Dictionary representation suitable for JSON serialization.
        """
        return {
            "batch_sizes": {k.value: v for k, v in self.batch_sizes.items()},
            "claim_policies": {k.value: v.value for k, v in self.claim_policies.items()},
            "stale_claim_seconds": self.stale_claim_seconds,
            "scan_page_size": self.scan_page_size,
            "drop_tracking_on_complete": self.drop_tracking_on_complete,
            "default_calendar_name": self.default_calendar_name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MigrationConfig:
        """
        Create from dictionary.

        Args:
            data: Dictionary containing configuration values.

        Returns:
            MigrationConfig instance.
        """
        return cls(
            batch_sizes={Stage(k): int(v) for k, v in (data.get("batch_sizes") or {}).items()},
            claim_policies={
                Stage(k): ClaimPolicy(v) for k, v in (data.get("claim_policies") or {}).items()
            },
            stale_claim_seconds=float(data.get("stale_claim_seconds", 300.0)),
            scan_page_size=int(data.get("scan_page_size", 500)),
            drop_tracking_on_complete=bool(data.get("drop_tracking_on_complete", True)),
            default_calendar_name=data.get("default_calendar_name", "Default"),
        )


__all__ = [
    "ClaimPolicy",
    "MigrationConfig",
    "DEFAULT_BATCH_SIZES",
    "DEFAULT_CLAIM_POLICIES",
]
