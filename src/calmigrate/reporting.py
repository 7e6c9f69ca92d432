"""
Error reporting for completed migrations.

Builds the summary and the HTML error list returned to the polling caller
with the terminal response.
"""

from collections import Counter
from collections.abc import Iterable
from html import escape

from calmigrate.models import ErrorEntry, Stage

_CONTEXT_TITLES: dict[str, str] = {
    Stage.VENUES.value: "Venues",
    Stage.TAGS.value: "Tags",
    Stage.EVENTS.value: "Events",
    Stage.CATEGORIES.value: "Categories",
    Stage.TICKETS.value: "Tickets",
    Stage.ORDERS.value: "Orders",
    Stage.ATTENDEES.value: "Attendees",
}


def summarize_errors(entries: Iterable[ErrorEntry]) -> dict[str, int]:
    """
    Count error log entries per context.

    Args:
        entries: Error log entries

    Returns:
        Mapping of context name to number of entries, in first-seen order
    """
    return dict(Counter(entry.context for entry in entries))


def render_error_html(entries: Iterable[ErrorEntry]) -> str:
    """
    Render error log entries as an HTML list grouped by context.

    Every value is HTML-escaped.

    Args:
        entries: Error log entries

    Returns:
        HTML fragment, or an empty string when there are no entries

    Example:
        >>> render_error_html([ErrorEntry("events", 3, "Gala", "venue 9 missing")])
        '<ul class="calmigrate-errors"><li><strong>Events</strong><ul><li>...'
    """
    grouped: dict[str, list[ErrorEntry]] = {}
    for entry in entries:
        grouped.setdefault(entry.context, []).append(entry)

    if not grouped:
        return ""

    parts = ['<ul class="calmigrate-errors">']
    for context, context_entries in grouped.items():
        title = _CONTEXT_TITLES.get(context, context.replace("_", " ").title())
        parts.append(f"<li><strong>{escape(title)}</strong><ul>")
        for entry in context_entries:
            parts.append(
                f"<li>{escape(entry.label)} (#{entry.source_id}): {escape(entry.message)}</li>"
            )
        parts.append("</ul></li>")
    parts.append("</ul>")
    return "".join(parts)


__all__ = [
    "summarize_errors",
    "render_error_html",
]
