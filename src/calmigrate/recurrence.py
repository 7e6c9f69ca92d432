"""
Recurrence translation from the source calendar's rule format.

The source stores recurring events as a loosely structured mapping (often
JSON encoded), for example::

    {"rules": [{"type": "Custom",
                "custom": {"type": "Monthly", "interval": 2,
                           "month": {"number": "First", "day": 2}},
                "end-type": "After", "end-count": 6}]}

parse_recurrence() classifies the raw value without raising, and
translate() turns the supported shapes into a NormalizedRecurrence.
Shapes the target cannot express are dropped (translate returns None) and
the event is migrated as a single occurrence.

Supported frequencies are daily, weekly, monthly and yearly. Weekdays are
numbered 1 (Monday) to 7 (Sunday). Monthly and yearly rules use either a
day of the month (``number`` without ``day``) or an ordinal weekday
(``number`` one of first..seventh or last, plus ``day``).
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from calmigrate.models import NormalizedRecurrence
from calmigrate.serialization import json_loads

logger = logging.getLogger(__name__)

DAILY = "daily"
WEEKLY = "weekly"
MONTHLY = "monthly"
YEARLY = "yearly"

FREQUENCIES = (DAILY, WEEKLY, MONTHLY, YEARLY)

_TYPE_ALIASES: dict[str, str] = {
    "daily": DAILY,
    "day": DAILY,
    "every day": DAILY,
    "weekly": WEEKLY,
    "week": WEEKLY,
    "every week": WEEKLY,
    "monthly": MONTHLY,
    "month": MONTHLY,
    "every month": MONTHLY,
    "yearly": YEARLY,
    "year": YEARLY,
    "every year": YEARLY,
}

WEEKDAY_CODES: dict[int, str] = {
    1: "MO",
    2: "TU",
    3: "WE",
    4: "TH",
    5: "FR",
    6: "SA",
    7: "SU",
}

ORDINAL_POSITIONS: dict[str, int] = {
    "first": 1,
    "second": 2,
    "third": 3,
    "fourth": 4,
    "fifth": 5,
    "sixth": 6,
    "seventh": 7,
    "last": -1,
}


@dataclass(frozen=True)
class ParsedRecurrence:
    """
    A recurrence rule of a supported frequency.

    Attributes:
        frequency: One of daily, weekly, monthly, yearly.
        rule: The flattened rule mapping (wrappers removed).
    """

    frequency: str
    rule: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Unsupported:
    """The raw value is well formed but describes nothing we can translate."""

    reason: str


@dataclass(frozen=True)
class Malformed:
    """The raw value could not be decoded."""

    reason: str


def parse_recurrence(raw: Any) -> ParsedRecurrence | Unsupported | Malformed:
    """
    Classify a raw source recurrence value.

    Never raises.

    Args:
        raw: None, a mapping, or a JSON string

    Returns:
        ParsedRecurrence for a supported frequency, Unsupported for empty
        values and unknown types, Malformed for undecodable payloads.
    """
    if raw is None:
        return Unsupported(reason="empty")

    data: Any = raw
    if isinstance(raw, str | bytes):
        if not raw.strip():
            return Unsupported(reason="empty")
        try:
            data = json_loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return Malformed(reason=f"invalid JSON: {e}")

    if not isinstance(data, Mapping):
        return Malformed(reason=f"expected a mapping, got {type(data).__name__}")
    if not data:
        return Unsupported(reason="empty")

    if "rules" in data:
        rules = data["rules"]
        if not isinstance(rules, list):
            return Malformed(reason="'rules' must be a list")
        if not rules:
            return Unsupported(reason="empty")
        if not isinstance(rules[0], Mapping):
            return Malformed(reason="rule must be a mapping")
        data = rules[0]

    rule = dict(data)
    type_name = _normalize_type(rule.get("type"))

    if type_name == "custom":
        custom = rule.pop("custom", None)
        if not isinstance(custom, Mapping):
            return Malformed(reason="custom rule without a 'custom' mapping")
        rule.update(custom)
        type_name = _normalize_type(custom.get("type"))

    if not type_name:
        return Unsupported(reason="missing type")

    frequency = _TYPE_ALIASES.get(type_name)
    if frequency is None:
        return Unsupported(reason=f"unsupported recurrence type {rule.get('type')!r}")

    return ParsedRecurrence(frequency=frequency, rule=rule)


def translate(raw: Any) -> NormalizedRecurrence | None:
    """
    Translate a raw source recurrence into the target representation.

    Args:
        raw: Raw recurrence value as stored by the source

    Returns:
        NormalizedRecurrence, or None when the rule is missing, malformed or
        uses a shape the target cannot express.

    Example:
        >>> translate({"type": "Weekly", "days": [2, 4]}).by_day
        ('TU', 'TH')
    """
    parsed = parse_recurrence(raw)
    if not isinstance(parsed, ParsedRecurrence):
        if isinstance(parsed, Malformed):
            logger.debug("Dropping malformed recurrence: %s", parsed.reason)
        return None

    rule = parsed.rule
    frequency = parsed.frequency
    interval = _coerce_interval(rule.get("interval"))
    count, end_date = _end_condition(rule)

    by_day: tuple[str, ...] | None = None
    by_month_day: tuple[int, ...] | None = None
    by_position: int | None = None
    by_month: int | None = None

    if frequency == WEEKLY:
        details = _details(rule, "week")
        raw_days = details.get("day", rule.get("days", rule.get("day")))
        codes = [code for code in map(_weekday_code, _as_list(raw_days)) if code]
        by_day = tuple(codes) or None

    elif frequency in (MONTHLY, YEARLY):
        details = _details(rule, "month" if frequency == MONTHLY else "year")
        number = details.get("number", rule.get("number"))
        day = details.get("day", rule.get("day"))

        if _is_blank(day):
            if not _is_blank(number):
                day_of_month = _as_int(number)
                if day_of_month is None or not 1 <= day_of_month <= 31:
                    # An ordinal needs a weekday to mean anything
                    logger.debug("Dropping recurrence with unusable number %r", number)
                    return None
                by_month_day = (day_of_month,)
        else:
            position = _position(number)
            code = _weekday_code(day)
            if position is None or code is None:
                logger.debug(
                    "Dropping recurrence with ordinal %r and weekday %r", number, day
                )
                return None
            by_day = (code,)
            by_position = position

        if frequency == YEARLY:
            months = _as_list(details.get("month", rule.get("month")))
            month = _as_int(months[0]) if months else None
            if month is not None and 1 <= month <= 12:
                by_month = month

    return NormalizedRecurrence(
        frequency=frequency,
        interval=interval,
        count=count,
        end_date=end_date,
        by_day=by_day,
        by_month_day=by_month_day,
        by_position=by_position,
        by_month=by_month,
    )


def _normalize_type(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return " ".join(value.strip().lower().split())


def _details(rule: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    """Return the nested per-frequency mapping (e.g. rule["month"]) if any."""
    value = rule.get(key)
    return value if isinstance(value, Mapping) else {}


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, list | tuple):
        return list(value)
    if isinstance(value, str) and "," in value:
        return [part.strip() for part in value.split(",")]
    return [value]


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _weekday_code(value: Any) -> str | None:
    number = _as_int(value)
    if number is None:
        return None
    return WEEKDAY_CODES.get(number)


def _position(number: Any) -> int | None:
    if isinstance(number, str):
        position = ORDINAL_POSITIONS.get(number.strip().lower())
        if position is not None:
            return position
    numeric = _as_int(number)
    if numeric is not None and (numeric == -1 or 1 <= numeric <= 7):
        return numeric
    return None


def _coerce_interval(value: Any) -> int:
    interval = _as_int(value)
    if interval is None or interval < 1:
        return 1
    return interval


def _end_condition(rule: Mapping[str, Any]) -> tuple[int, date | None]:
    end_type = _normalize_type(rule.get("end-type"))

    if end_type == "after":
        return max(_as_int(rule.get("end-count")) or 0, 0), None
    if end_type == "on":
        return 0, _as_date(rule.get("end"))
    if end_type:
        return 0, None

    count = max(_as_int(rule.get("count")) or 0, 0)
    return count, _as_date(rule.get("end"))


def _as_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            pass
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            logger.debug("Ignoring unparseable recurrence end date %r", value)
    return None


__all__ = [
    "DAILY",
    "WEEKLY",
    "MONTHLY",
    "YEARLY",
    "FREQUENCIES",
    "WEEKDAY_CODES",
    "ORDINAL_POSITIONS",
    "ParsedRecurrence",
    "Unsupported",
    "Malformed",
    "parse_recurrence",
    "translate",
]
