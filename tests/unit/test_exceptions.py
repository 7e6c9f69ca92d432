"""Unit tests for the calmigrate exception hierarchy."""

from __future__ import annotations

import pytest

from calmigrate.exceptions import (
    CalMigrateError,
    InvalidRunStateError,
    MissingSourceDataError,
    ProgressError,
    RowMigrationError,
    RowSkipped,
    TargetWriteError,
    TrackingError,
    UnresolvedReferenceError,
)
from calmigrate.models import Stage


class TestExceptionHierarchy:
    """Tests for inheritance relationships."""

    @pytest.mark.parametrize(
        "exc_type",
        [MissingSourceDataError, UnresolvedReferenceError, TargetWriteError],
    )
    def test_row_errors_share_a_base(self, exc_type: type[Exception]) -> None:
        assert issubclass(exc_type, RowMigrationError)
        assert issubclass(exc_type, CalMigrateError)

    @pytest.mark.parametrize(
        "exc_type",
        [RowSkipped, TrackingError, ProgressError, InvalidRunStateError],
    )
    def test_other_errors_are_not_row_errors(self, exc_type: type[Exception]) -> None:
        assert issubclass(exc_type, CalMigrateError)
        assert not issubclass(exc_type, RowMigrationError)


class TestRowMigrationError:
    """Tests for RowMigrationError attributes."""

    def test_attributes_and_message(self) -> None:
        error = MissingSourceDataError(Stage.EVENTS, 12, "event has no start date", label="Gala")

        assert error.kind is Stage.EVENTS
        assert error.source_id == 12
        assert error.label == "Gala"
        assert error.message == "event has no start date"
        assert str(error) == "Cannot migrate events 12: event has no start date"

    def test_default_label(self) -> None:
        error = TargetWriteError(Stage.ORDERS, 4, "target write failed: boom")

        assert error.label == "orders #4"


class TestUnresolvedReferenceError:
    """Tests for UnresolvedReferenceError."""

    def test_message_names_the_reference(self) -> None:
        error = UnresolvedReferenceError(Stage.EVENTS, 3, Stage.VENUES, 9, label="Gala")

        assert error.ref_kind is Stage.VENUES
        assert error.ref_id == 9
        assert error.message == "referenced venues 9 has not been migrated"


class TestRowSkipped:
    """Tests for RowSkipped."""

    def test_reason(self) -> None:
        skipped = RowSkipped(Stage.TICKETS, 5, "event already has ticket data")

        assert skipped.reason == "event already has ticket data"
        assert "tickets 5" in str(skipped)
