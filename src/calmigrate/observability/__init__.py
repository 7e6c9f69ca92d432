"""
Observability utilities for calmigrate.

Tracing and standard attribute definitions for consistent spans across the
stores, stage processors and orchestrator. OpenTelemetry is optional; every
utility here works without it.
"""

from calmigrate.observability.attributes import (
    ATTR_BATCH_SIZE,
    ATTR_DB_TABLE,
    ATTR_MIGRATION_STAGE,
    ATTR_MIGRATION_STATUS,
    ATTR_RUN_ID,
    ATTR_SOURCE_ID,
    ATTR_STAGE_PROCESSED,
    ATTR_STAGE_TOTAL,
    ATTR_TARGET_ID,
)
from calmigrate.observability.tracer import (
    OTEL_AVAILABLE,
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    RecordedSpan,
    Tracer,
    create_tracer,
    traced,
)

__all__ = [
    "OTEL_AVAILABLE",
    "traced",
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "RecordedSpan",
    "create_tracer",
    "ATTR_RUN_ID",
    "ATTR_MIGRATION_STAGE",
    "ATTR_MIGRATION_STATUS",
    "ATTR_STAGE_TOTAL",
    "ATTR_STAGE_PROCESSED",
    "ATTR_SOURCE_ID",
    "ATTR_TARGET_ID",
    "ATTR_BATCH_SIZE",
    "ATTR_DB_TABLE",
]
