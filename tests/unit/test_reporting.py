"""Unit tests for error summaries and the HTML error list."""

from __future__ import annotations

from calmigrate.models import ErrorEntry
from calmigrate.reporting import render_error_html, summarize_errors


def _entry(
    context: str, source_id: int, label: str = "Item", message: str = "failed"
) -> ErrorEntry:
    return ErrorEntry(context=context, source_id=source_id, label=label, message=message)


class TestSummarizeErrors:
    """Tests for summarize_errors()."""

    def test_counts_per_context(self) -> None:
        entries = [_entry("events", 1), _entry("orders", 2), _entry("events", 3)]

        assert summarize_errors(entries) == {"events": 2, "orders": 1}

    def test_first_seen_order(self) -> None:
        entries = [_entry("orders", 1), _entry("events", 2), _entry("orders", 3)]

        assert list(summarize_errors(entries)) == ["orders", "events"]

    def test_empty(self) -> None:
        assert summarize_errors([]) == {}


class TestRenderErrorHtml:
    """Tests for render_error_html()."""

    def test_empty_log_renders_nothing(self) -> None:
        assert render_error_html([]) == ""

    def test_groups_by_context(self) -> None:
        html = render_error_html(
            [
                _entry("events", 3, "Gala", "venue 9 missing"),
                _entry("orders", 8, "Order #8", "event 2 missing"),
                _entry("events", 4, "Fair", "no start date"),
            ]
        )

        assert html == (
            '<ul class="calmigrate-errors">'
            "<li><strong>Events</strong><ul>"
            "<li>Gala (#3): venue 9 missing</li>"
            "<li>Fair (#4): no start date</li>"
            "</ul></li>"
            "<li><strong>Orders</strong><ul>"
            "<li>Order #8 (#8): event 2 missing</li>"
            "</ul></li>"
            "</ul>"
        )

    def test_escapes_values(self) -> None:
        html = render_error_html([_entry("events", 1, "<b>Gala</b>", "a & b")])

        assert "&lt;b&gt;Gala&lt;/b&gt;" in html
        assert "a &amp; b" in html
        assert "<b>" not in html

    def test_unknown_context_is_titled(self) -> None:
        html = render_error_html([_entry("relationship_rebuild", 1)])

        assert "<strong>Relationship Rebuild</strong>" in html
