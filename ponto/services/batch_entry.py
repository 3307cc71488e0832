from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timezone, tzinfo

from ponto.errors import ValidationError
from ponto.services.timecalc import PunchEvent, PunchKind

MAX_BATCH_ENTRIES = 4
MIN_SPACING_MINUTES = 1

_HHMM_PATTERN = re.compile(r"^\d{2}:\d{2}$")


@dataclass(frozen=True)
class BatchEntry:
    kind: PunchKind
    time_of_day: str


def _minutes_of_day(value: str) -> int:
    hour_str, minute_str = value.split(":")
    return int(hour_str) * 60 + int(minute_str)


def _parse_hhmm(value: str, position: int) -> time:
    if not _HHMM_PATTERN.match(value or ""):
        raise ValidationError(
            code="INVALID_TIME_FORMAT",
            message=f"Invalid time in entry {position}: {value!r}",
        )
    hour_str, minute_str = value.split(":")
    hour, minute = int(hour_str), int(minute_str)
    if hour > 23 or minute > 59:
        raise ValidationError(
            code="INVALID_TIME_FORMAT",
            message=f"Invalid time in entry {position}: {value!r}",
        )
    return time(hour=hour, minute=minute)


def validate_batch_entries(
    calendar_day: date,
    entries: Sequence[BatchEntry],
    tz: tzinfo,
    *,
    max_entries: int = MAX_BATCH_ENTRIES,
    min_spacing_minutes: int = MIN_SPACING_MINUTES,
) -> list[PunchEvent]:
    """Check a manually typed day of punches and turn it into events to append.

    Entries are ordered by their HH:MM text, then every time must be a valid
    clock time, kinds must alternate and consecutive punches must be at least
    `min_spacing_minutes` apart. Any failure rejects the whole batch.
    """
    if not entries:
        raise ValidationError(code="NO_ENTRIES", message="At least one punch is required.")
    if len(entries) > max_entries:
        raise ValidationError(
            code="TOO_MANY_ENTRIES",
            message=f"Cannot register more than {max_entries} punches per day.",
        )

    ordered = sorted(entries, key=lambda entry: entry.time_of_day)
    parsed: list[time] = []
    for position, entry in enumerate(ordered, start=1):
        parsed.append(_parse_hhmm(entry.time_of_day, position))

        if position == 1:
            continue
        previous = ordered[position - 2]
        if entry.kind == previous.kind:
            raise ValidationError(
                code="CONSECUTIVE_SAME_KIND",
                message="Cannot register two entries or two exits in a row.",
            )
        spacing = _minutes_of_day(entry.time_of_day) - _minutes_of_day(previous.time_of_day)
        if spacing < min_spacing_minutes:
            raise ValidationError(
                code="MIN_SPACING",
                message=f"Punches must be at least {min_spacing_minutes} minute(s) apart.",
            )

    return [
        PunchEvent(
            kind=PunchKind(entry.kind),
            occurred_at=datetime.combine(calendar_day, clock_time, tzinfo=tz).astimezone(timezone.utc),
            calendar_day=calendar_day,
        )
        for entry, clock_time in zip(ordered, parsed)
    ]
