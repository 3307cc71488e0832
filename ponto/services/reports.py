from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Literal

from sqlalchemy.orm import Session

from ponto.errors import NotFoundError, ValidationError
from ponto.models import Employee
from ponto.services.period import (
    PeriodOverview,
    PeriodSummary,
    TimeBankEntry,
    build_period_overview,
    calculate_time_bank,
    resolve_range,
    summarize_period,
)
from ponto.services.punches import (
    get_employee_or_404,
    list_employees,
    load_punch_map,
    load_punch_maps,
    local_today,
)
from ponto.services.timecalc import (
    DailyRecord,
    DayStatus,
    ReportDayView,
    ShiftPolicy,
    build_daily_record,
    build_report_day_view,
)
from ponto.settings import get_settings, get_shift_policy

logger = logging.getLogger("ponto.reports")

HistoryPeriod = Literal["week", "month"]
_HISTORY_DAYS: dict[str, int] = {"week": 7, "month": 30}


@dataclass(frozen=True)
class MonthlyReport:
    employee: Employee
    year: int
    month: int
    summary: PeriodSummary
    days: tuple[ReportDayView, ...]

    @property
    def days_worked(self) -> int:
        return self.summary.days_worked

    @property
    def days_with_records(self) -> int:
        return self.summary.days_with_records

    @property
    def days_with_overtime(self) -> int:
        return self.summary.days_with_overtime


@dataclass(frozen=True)
class DashboardRow:
    employee: Employee
    overview: PeriodOverview


@dataclass(frozen=True)
class DashboardStats:
    total_employees: int
    working: int
    absent: int
    complete: int
    no_record: int
    total_worked_minutes: int
    average_worked_minutes: float
    total_punches: int


@dataclass(frozen=True)
class Dashboard:
    start_date: date
    end_date: date
    rows: tuple[DashboardRow, ...]
    stats: DashboardStats

    @property
    def is_single_day(self) -> bool:
        return self.start_date == self.end_date


@dataclass(frozen=True)
class EmployeeHighlight:
    full_name: str
    value: float


@dataclass(frozen=True)
class GeneralStats:
    year: int
    month: int
    total_employees: int
    total_worked_minutes: int
    total_overtime_hours: float
    average_days_worked_per_employee: float
    most_worked: EmployeeHighlight | None
    most_overtime: EmployeeHighlight | None


@dataclass(frozen=True)
class TimeBankRow:
    employee: Employee
    entry: TimeBankEntry


@dataclass(frozen=True)
class History:
    employee_cpf: str
    start_date: date
    end_date: date
    days: tuple[DailyRecord, ...]

    @property
    def total_worked_minutes(self) -> int:
        return sum(record.worked_minutes for record in self.days)


def is_valid_month_year(year: int, month: int, *, today: date | None = None, min_year: int | None = None) -> bool:
    reference = today or local_today()
    floor_year = get_settings().report_min_year if min_year is None else min_year
    if month < 1 or month > 12:
        return False
    if year < floor_year:
        return False
    if year > reference.year:
        return False
    if year == reference.year and month > reference.month:
        return False
    return True


def month_bounds(year: int, month: int) -> tuple[date, date]:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def _ensure_valid_month(year: int, month: int, today: date | None) -> None:
    if not is_valid_month_year(year, month, today=today):
        raise ValidationError(
            code="INVALID_MONTH",
            message=f"Month {month:02d}/{year} is not available for reports.",
        )


def _monthly_summary(
    employee_cpf: str,
    punches_by_day,
    year: int,
    month: int,
    policy: ShiftPolicy,
) -> PeriodSummary:
    start, end = month_bounds(year, month)
    return summarize_period(employee_cpf, punches_by_day, start, end, policy)


def build_monthly_report(
    db: Session,
    employee_cpf: str,
    year: int,
    month: int,
    *,
    today: date | None = None,
) -> MonthlyReport:
    """Monthly attendance report for one employee.

    Raises ValidationError for a month outside the reportable window,
    NotFoundError when the employee is unknown or has no punches in the month.
    Day rows use the report view, so a trimmed day lists a synthetic last exit.
    """
    _ensure_valid_month(year, month, today)
    employee = get_employee_or_404(db, employee_cpf)
    start, end = month_bounds(year, month)
    punches_by_day = load_punch_map(db, employee_cpf, start, end)
    if not any(punches_by_day.values()):
        raise NotFoundError(
            code="NO_RECORDS_IN_PERIOD",
            message="No punches found for the selected period.",
        )

    summary = _monthly_summary(employee_cpf, punches_by_day, year, month, get_shift_policy())
    report = MonthlyReport(
        employee=employee,
        year=year,
        month=month,
        summary=summary,
        days=tuple(build_report_day_view(record) for record in summary.days),
    )
    logger.info(
        "monthly_report_generated",
        extra={
            "employee_cpf": employee_cpf,
            "year": year,
            "month": month,
            "days_with_records": report.days_with_records,
            "days_worked": report.days_worked,
            "total_worked_minutes": summary.total_worked_minutes,
        },
    )
    return report


def build_period_summary(
    db: Session,
    employee_cpf: str,
    start_date: date,
    end_date: date | None = None,
) -> PeriodSummary:
    get_employee_or_404(db, employee_cpf)
    start, end = resolve_range(start_date, end_date)
    punches_by_day = load_punch_map(db, employee_cpf, start, end)
    return summarize_period(employee_cpf, punches_by_day, start, end, get_shift_policy())


def _dashboard_stats(rows: tuple[DashboardRow, ...]) -> DashboardStats:
    statuses = [row.overview.status for row in rows]
    total_worked = sum(row.overview.worked_minutes for row in rows)
    return DashboardStats(
        total_employees=len(rows),
        working=statuses.count(DayStatus.WORKING),
        absent=statuses.count(DayStatus.ABSENT),
        complete=statuses.count(DayStatus.COMPLETE),
        no_record=statuses.count(DayStatus.NO_RECORD),
        total_worked_minutes=total_worked,
        average_worked_minutes=total_worked / len(rows) if rows else 0.0,
        total_punches=sum(len(row.overview.events) for row in rows),
    )


def build_dashboard(
    db: Session,
    start_date: date,
    end_date: date | None = None,
    *,
    cpf_filter: str | None = None,
    name_filter: str | None = None,
    status_filter: DayStatus | None = None,
) -> Dashboard:
    """Admin overview of every active employee for a day or a range.

    Stats cover all employees; the filters only narrow the returned rows.
    The status filter applies to single-day views only.
    """
    start, end = resolve_range(start_date, end_date)
    employees = list_employees(db)
    maps = load_punch_maps(db, [employee.cpf for employee in employees], start, end)
    policy = get_shift_policy()

    rows = tuple(
        DashboardRow(
            employee=employee,
            overview=build_period_overview(employee.cpf, maps.get(employee.cpf, {}), start, end, policy),
        )
        for employee in employees
    )
    stats = _dashboard_stats(rows)

    visible = rows
    if cpf_filter:
        visible = tuple(row for row in visible if cpf_filter in row.employee.cpf)
    if name_filter:
        needle = name_filter.lower()
        visible = tuple(row for row in visible if needle in row.employee.full_name.lower())
    # Status is only reported for a single day, so it cannot narrow a range.
    if status_filter is not None and start == end:
        visible = tuple(row for row in visible if row.overview.status == status_filter)

    return Dashboard(start_date=start, end_date=end, rows=visible, stats=stats)


def build_time_bank(
    db: Session,
    start_date: date,
    end_date: date | None = None,
) -> list[TimeBankRow]:
    """Balance per active employee, highest credit first."""
    start, end = resolve_range(start_date, end_date)
    employees = list_employees(db)
    maps = load_punch_maps(db, [employee.cpf for employee in employees], start, end)
    policy = get_shift_policy()
    rows = [
        TimeBankRow(
            employee=employee,
            entry=calculate_time_bank(employee.cpf, maps.get(employee.cpf, {}), start, end, policy),
        )
        for employee in employees
    ]
    rows.sort(key=lambda row: row.entry.balance_minutes, reverse=True)
    return rows


def build_general_stats(
    db: Session,
    year: int,
    month: int,
    *,
    today: date | None = None,
) -> GeneralStats:
    _ensure_valid_month(year, month, today)
    start, end = month_bounds(year, month)
    employees = list_employees(db)
    maps = load_punch_maps(db, [employee.cpf for employee in employees], start, end)
    policy = get_shift_policy()

    summaries: list[tuple[Employee, PeriodSummary]] = []
    for employee in employees:
        punches_by_day = maps.get(employee.cpf, {})
        if not any(punches_by_day.values()):
            continue
        summaries.append((employee, _monthly_summary(employee.cpf, punches_by_day, year, month, policy)))

    total_worked = sum(summary.total_worked_minutes for _, summary in summaries)
    total_overtime = sum(summary.total_overtime_hours for _, summary in summaries)
    total_days_worked = sum(summary.days_worked for _, summary in summaries)

    most_worked = None
    most_overtime = None
    if summaries:
        top_employee, top_summary = max(summaries, key=lambda item: item[1].total_worked_minutes)
        most_worked = EmployeeHighlight(top_employee.full_name, top_summary.total_worked_minutes)
        ot_employee, ot_summary = max(summaries, key=lambda item: item[1].total_overtime_hours)
        if ot_summary.total_overtime_hours > 0:
            most_overtime = EmployeeHighlight(ot_employee.full_name, ot_summary.total_overtime_hours)

    return GeneralStats(
        year=year,
        month=month,
        total_employees=len(summaries),
        total_worked_minutes=total_worked,
        total_overtime_hours=total_overtime,
        average_days_worked_per_employee=total_days_worked / len(summaries) if summaries else 0.0,
        most_worked=most_worked,
        most_overtime=most_overtime,
    )


def build_history(
    db: Session,
    employee_cpf: str,
    period: HistoryPeriod = "week",
    *,
    today: date | None = None,
) -> History:
    """Every calendar day of the last week or month up to today, empty days included."""
    days_back = _HISTORY_DAYS.get(period)
    if days_back is None:
        raise ValidationError(code="INVALID_PERIOD", message="Period must be 'week' or 'month'.")

    end = today or local_today()
    start = end - timedelta(days=days_back)
    punches_by_day = load_punch_map(db, employee_cpf, start, end)
    policy = get_shift_policy()

    records: list[DailyRecord] = []
    current = start
    while current <= end:
        records.append(build_daily_record(current, punches_by_day.get(current, []), policy))
        current += timedelta(days=1)
    return History(employee_cpf=employee_cpf, start_date=start, end_date=end, days=tuple(records))
