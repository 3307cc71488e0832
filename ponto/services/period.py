from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date

from ponto.errors import ValidationError
from ponto.services.timecalc import (
    DEFAULT_POLICY,
    DailyRecord,
    DayStatus,
    PunchEvent,
    ShiftPolicy,
    build_daily_record,
    calculate_worked_minutes,
    classify_status,
    dashboard_overtime_minutes,
    sort_punches,
)

PunchMap = Mapping[date, Iterable[PunchEvent]]


class BalanceClassification(str, enum.Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"
    NEUTRAL = "NEUTRAL"


@dataclass(frozen=True)
class PeriodSummary:
    employee_cpf: str
    start_date: date
    end_date: date
    days: tuple[DailyRecord, ...]
    total_worked_minutes: int
    total_overtime_hours: float
    average_worked_minutes: float
    max_daily_minutes: int
    min_daily_minutes: int
    is_single_day: bool
    status: DayStatus

    @property
    def days_with_records(self) -> int:
        return len(self.days)

    @property
    def days_worked(self) -> int:
        return sum(1 for record in self.days if record.is_complete)

    @property
    def days_with_overtime(self) -> int:
        return sum(1 for record in self.days if record.overtime_minutes > 0)


@dataclass(frozen=True)
class TimeBankEntry:
    employee_cpf: str
    balance_minutes: int
    classification: BalanceClassification


@dataclass(frozen=True)
class PeriodOverview:
    """One employee's punches over a range, flattened like the admin dashboard shows them."""

    employee_cpf: str
    events: tuple[PunchEvent, ...]
    worked_minutes: int
    dashboard_overtime_minutes: int
    status: DayStatus
    is_single_day: bool

    @property
    def last_event(self) -> PunchEvent | None:
        return self.events[-1] if self.events else None


def resolve_range(start_date: date, end_date: date | None) -> tuple[date, date]:
    effective_end = end_date or start_date
    if effective_end < start_date:
        raise ValidationError(
            code="INVALID_DATE_RANGE",
            message="End date cannot be earlier than start date.",
        )
    return start_date, effective_end


def filter_punch_map(punches_by_day: PunchMap, start_date: date, end_date: date) -> dict[date, list[PunchEvent]]:
    return {
        day: list(events)
        for day, events in sorted(punches_by_day.items())
        if start_date <= day <= end_date
    }


def summarize_period(
    employee_cpf: str,
    punches_by_day: PunchMap,
    start_date: date,
    end_date: date | None = None,
    policy: ShiftPolicy = DEFAULT_POLICY,
) -> PeriodSummary:
    start, end = resolve_range(start_date, end_date)
    in_range = filter_punch_map(punches_by_day, start, end)

    days = tuple(
        build_daily_record(day, events, policy)
        for day, events in in_range.items()
        if events
    )
    total_worked = sum(record.display_worked_minutes for record in days)
    total_overtime_hours = sum(record.overtime_minutes for record in days) / 60

    worked_days = [record.display_worked_minutes for record in days if record.display_worked_minutes > 0]
    if worked_days:
        average = sum(worked_days) / len(worked_days)
        longest = max(worked_days)
        shortest = min(worked_days)
    else:
        average, longest, shortest = 0.0, 0, 0

    is_single_day = start == end
    all_events = sort_punches(event for record in days for event in record.events)
    return PeriodSummary(
        employee_cpf=employee_cpf,
        start_date=start,
        end_date=end,
        days=days,
        total_worked_minutes=total_worked,
        total_overtime_hours=total_overtime_hours,
        average_worked_minutes=average,
        max_daily_minutes=longest,
        min_daily_minutes=shortest,
        is_single_day=is_single_day,
        status=classify_status(all_events, is_single_day=is_single_day),
    )


def build_period_overview(
    employee_cpf: str,
    punches_by_day: PunchMap,
    start_date: date,
    end_date: date | None = None,
    policy: ShiftPolicy = DEFAULT_POLICY,
) -> PeriodOverview:
    """Dashboard row: every punch in range paired as one sequence, raw minutes, no caps."""
    start, end = resolve_range(start_date, end_date)
    in_range = filter_punch_map(punches_by_day, start, end)
    events = tuple(sort_punches(event for day_events in in_range.values() for event in day_events))
    worked = calculate_worked_minutes(events)
    is_single_day = start == end
    return PeriodOverview(
        employee_cpf=employee_cpf,
        events=events,
        worked_minutes=worked,
        dashboard_overtime_minutes=dashboard_overtime_minutes(worked, policy),
        status=classify_status(events, is_single_day=is_single_day),
        is_single_day=is_single_day,
    )


def classify_balance(balance_minutes: int) -> BalanceClassification:
    if balance_minutes > 0:
        return BalanceClassification.CREDIT
    if balance_minutes < 0:
        return BalanceClassification.DEBIT
    return BalanceClassification.NEUTRAL


def calculate_time_bank(
    employee_cpf: str,
    punches_by_day: PunchMap,
    start_date: date,
    end_date: date | None = None,
    policy: ShiftPolicy = DEFAULT_POLICY,
) -> TimeBankEntry:
    start, end = resolve_range(start_date, end_date)
    balance = 0
    for events in filter_punch_map(punches_by_day, start, end).values():
        if not events:
            continue
        worked = calculate_worked_minutes(sort_punches(events))
        balance += worked - policy.time_bank_daily_quota_minutes
    return TimeBankEntry(
        employee_cpf=employee_cpf,
        balance_minutes=balance,
        classification=classify_balance(balance),
    )
