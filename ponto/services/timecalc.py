"""Daily attendance arithmetic.

Everything here is a pure function of its arguments: punch events come in,
minutes and classifications come out. Nothing reads settings, the clock or the
database, so the same inputs always give the same record.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta

from ponto.errors import ValidationError

DEFAULT_TIMEZONE = "America/Sao_Paulo"

NORMAL_SHIFT_MINUTES = 8 * 60 + 48
OVERTIME_START_MINUTES = 10 * 60 + 48
MAX_OVERTIME_MINUTES = 2 * 60
TIME_BANK_DAILY_QUOTA_MINUTES = 10 * 60 + 48


class PunchKind(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"


class DayStatus(str, enum.Enum):
    NO_RECORD = "NO_RECORD"
    WORKING = "WORKING"
    ABSENT = "ABSENT"
    COMPLETE = "COMPLETE"


@dataclass(frozen=True)
class ShiftPolicy:
    normal_shift_minutes: int = NORMAL_SHIFT_MINUTES
    overtime_start_minutes: int = OVERTIME_START_MINUTES
    max_overtime_minutes: int = MAX_OVERTIME_MINUTES
    time_bank_daily_quota_minutes: int = TIME_BANK_DAILY_QUOTA_MINUTES


DEFAULT_POLICY = ShiftPolicy()


@dataclass(frozen=True)
class PunchEvent:
    kind: PunchKind
    occurred_at: datetime
    calendar_day: date
    latitude: float | None = None
    longitude: float | None = None
    accuracy_m: float | None = None
    approx_address: str | None = None


@dataclass(frozen=True)
class DailyRecord:
    day: date
    events: tuple[PunchEvent, ...]
    worked_minutes: int
    display_worked_minutes: int
    overtime_minutes: int
    dashboard_overtime_minutes: int
    is_complete: bool
    status: DayStatus

    @property
    def overtime_hours(self) -> float:
        return self.overtime_minutes / 60


@dataclass(frozen=True)
class ReportDayView:
    """Punches as printed on a report; the final exit may be synthetic."""

    day: date
    punches: tuple[PunchEvent, ...]
    worked_minutes: int
    overtime_minutes: int
    is_complete: bool
    adjusted: bool


def sort_punches(events: Iterable[PunchEvent]) -> list[PunchEvent]:
    # Stable: events sharing an instant keep their stored order.
    return sorted(events, key=lambda event: event.occurred_at)


def _positional_pairs(events: Sequence[PunchEvent]) -> Iterator[tuple[PunchEvent, PunchEvent]]:
    for index in range(0, len(events) - 1, 2):
        yield events[index], events[index + 1]


def _is_counted_pair(clock_in: PunchEvent, clock_out: PunchEvent) -> bool:
    return (
        clock_in.kind == PunchKind.IN
        and clock_out.kind == PunchKind.OUT
        and clock_out.occurred_at > clock_in.occurred_at
    )


def _worked_duration(events: Sequence[PunchEvent]) -> timedelta:
    total = timedelta(0)
    for clock_in, clock_out in _positional_pairs(events):
        if _is_counted_pair(clock_in, clock_out):
            total += clock_out.occurred_at - clock_in.occurred_at
    return total


def _to_minutes(duration: timedelta) -> int:
    return int(duration.total_seconds() // 60)


def calculate_worked_minutes(events: Sequence[PunchEvent]) -> int:
    """Worked minutes for chronologically ordered events of one day.

    Events are paired by position (0 with 1, 2 with 3, ...), not by
    alternation. A pair only counts when it is an entry followed by a later
    exit; any other pair, and a trailing odd event, adds nothing. Stored days
    with broken sequences therefore yield a smaller total instead of an error.
    """
    if len(events) < 2:
        return 0
    return _to_minutes(_worked_duration(events))


def calculate_worked_minutes_strict(events: Sequence[PunchEvent]) -> int:
    """Same total as calculate_worked_minutes, but rejects broken sequences.

    Intended for freshly validated input: events must alternate starting with
    an entry and every exit must be later than its entry. A trailing entry
    (shift still open) is accepted and adds nothing.
    """
    for index, event in enumerate(events):
        expected = PunchKind.IN if index % 2 == 0 else PunchKind.OUT
        if event.kind != expected:
            raise ValidationError(
                code="NON_ALTERNATING_SEQUENCE",
                message=f"Punch {index + 1} should be {expected.value}, got {PunchKind(event.kind).value}.",
            )
    for clock_in, clock_out in _positional_pairs(events):
        if clock_out.occurred_at <= clock_in.occurred_at:
            raise ValidationError(
                code="EXIT_NOT_AFTER_ENTRY",
                message="Exit punch must be later than its entry punch.",
            )
    return calculate_worked_minutes(events)


def classify_status(events: Sequence[PunchEvent], *, is_single_day: bool = True) -> DayStatus:
    if not events:
        return DayStatus.NO_RECORD

    if is_single_day:
        if len(events) >= 4:
            return DayStatus.COMPLETE
        if events[-1].kind == PunchKind.IN:
            return DayStatus.WORKING
        return DayStatus.ABSENT

    has_entry = any(event.kind == PunchKind.IN for event in events)
    has_exit = any(event.kind == PunchKind.OUT for event in events)
    if has_entry and has_exit:
        return DayStatus.COMPLETE
    if has_entry:
        return DayStatus.WORKING
    return DayStatus.NO_RECORD


def is_day_complete(events: Sequence[PunchEvent]) -> bool:
    if len(events) < 2:
        return False
    return any(event.kind == PunchKind.IN for event in events) and any(
        event.kind == PunchKind.OUT for event in events
    )


def report_overtime_minutes(worked_minutes: int, policy: ShiftPolicy = DEFAULT_POLICY) -> int:
    """Overtime credited on reports: only past the overtime start, capped per day."""
    beyond_start = worked_minutes - policy.overtime_start_minutes
    return max(0, min(beyond_start, policy.max_overtime_minutes))


def display_worked_minutes(worked_minutes: int, policy: ShiftPolicy = DEFAULT_POLICY) -> int:
    """Reportable worked minutes; time between the normal shift and the overtime start is dropped."""
    if worked_minutes <= policy.overtime_start_minutes:
        return min(worked_minutes, policy.normal_shift_minutes)
    return policy.normal_shift_minutes + report_overtime_minutes(worked_minutes, policy)


def dashboard_overtime_minutes(worked_minutes: int, policy: ShiftPolicy = DEFAULT_POLICY) -> int:
    """Overtime shown on the admin dashboard: everything past the normal shift, uncapped."""
    return max(0, worked_minutes - policy.normal_shift_minutes)


def build_daily_record(
    day: date,
    events: Iterable[PunchEvent],
    policy: ShiftPolicy = DEFAULT_POLICY,
) -> DailyRecord:
    ordered = tuple(sort_punches(events))
    worked = calculate_worked_minutes(ordered)
    return DailyRecord(
        day=day,
        events=ordered,
        worked_minutes=worked,
        display_worked_minutes=display_worked_minutes(worked, policy),
        overtime_minutes=report_overtime_minutes(worked, policy),
        dashboard_overtime_minutes=dashboard_overtime_minutes(worked, policy),
        is_complete=is_day_complete(ordered),
        status=classify_status(ordered, is_single_day=True),
    )


def build_report_day_view(record: DailyRecord) -> ReportDayView:
    """Punches to print for a day so the listed intervals add up to the reported total.

    When the reported total is lower than what was actually worked, the last
    exit is moved back so that it sits exactly (reported - earlier pairs)
    after the last entry. The record itself is left untouched. Days whose
    last two punches are not an entry/exit pair, or whose earlier pairs alone
    exceed the reported total, are printed as stored.
    """
    events = record.events
    view = ReportDayView(
        day=record.day,
        punches=events,
        worked_minutes=record.display_worked_minutes,
        overtime_minutes=record.overtime_minutes,
        is_complete=record.is_complete,
        adjusted=False,
    )
    if record.display_worked_minutes == record.worked_minutes:
        return view
    if len(events) < 2 or len(events) % 2:
        return view

    last_in, last_out = events[-2], events[-1]
    if not _is_counted_pair(last_in, last_out):
        return view

    remaining = timedelta(minutes=record.display_worked_minutes) - _worked_duration(events[:-2])
    if remaining <= timedelta(0):
        return view

    synthetic_out = replace(last_out, occurred_at=last_in.occurred_at + remaining)
    return replace(view, punches=events[:-1] + (synthetic_out,), adjusted=True)
