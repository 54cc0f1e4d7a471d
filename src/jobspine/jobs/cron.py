"""
Cron expression evaluation.

Pure functions over standard 5-field cron expressions (minute, hour,
day-of-month, month, day-of-week). Wildcards, ranges, lists, steps and
month/day names (``JAN``, ``MON-FRI``) are supported through ``croniter``.
Seconds fields and ``@daily``-style aliases are rejected.

Occurrences are computed in the cron job's timezone and returned in UTC.

Examples:
    >>> from datetime import datetime, UTC
    >>> next_occurrence("*/15 * * * *", datetime(2024, 1, 5, 10, 7, tzinfo=UTC))
    datetime.datetime(2024, 1, 5, 10, 15, tzinfo=datetime.timezone.utc)

Tags:
    jobspine, scheduling, cron, croniter
"""

from __future__ import annotations

import zoneinfo
from collections.abc import Iterator
from datetime import UTC, datetime

from croniter import croniter

from jobspine.core.errors import ValidationError
from jobspine.jobs.models import ensure_utc

CRON_FIELD_COUNT = 5


def _zone(timezone: str) -> zoneinfo.ZoneInfo:
    try:
        return zoneinfo.ZoneInfo(timezone)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError) as e:
        raise ValidationError(f"Unknown timezone: {timezone}", field="timezone", value=timezone, cause=e) from e


def validate_cron_expression(expr: str) -> None:
    """Raise :class:`ValidationError` unless *expr* is a valid 5-field expression."""
    if not isinstance(expr, str) or not expr.strip():
        raise ValidationError("Cron expression is empty", field="schedule", value=expr)

    fields = expr.split()
    if len(fields) != CRON_FIELD_COUNT:
        raise ValidationError(
            f"Cron expression must have {CRON_FIELD_COUNT} fields, got {len(fields)}: {expr!r}",
            field="schedule",
            value=expr,
        )
    if not croniter.is_valid(expr):
        raise ValidationError(f"Invalid cron expression: {expr!r}", field="schedule", value=expr)


def is_valid_cron_expression(expr: str) -> bool:
    try:
        validate_cron_expression(expr)
    except ValidationError:
        return False
    return True


def iter_occurrences(
    expr: str,
    after: datetime,
    count: int,
    timezone: str = "UTC",
) -> Iterator[datetime]:
    """Yield the next *count* occurrences strictly after *after*, in UTC."""
    validate_cron_expression(expr)
    tz = _zone(timezone)
    after_local = ensure_utc(after).astimezone(tz)

    cron = croniter(expr, after_local)
    for _ in range(count):
        yield cron.get_next(datetime).astimezone(UTC)


def next_occurrence(expr: str, after: datetime, timezone: str = "UTC") -> datetime:
    """First occurrence strictly after *after*, in UTC.

    A naive *after* is interpreted as UTC.
    """
    return next(iter_occurrences(expr, after, 1, timezone))


__all__ = [
    "CRON_FIELD_COUNT",
    "is_valid_cron_expression",
    "iter_occurrences",
    "next_occurrence",
    "validate_cron_expression",
]
