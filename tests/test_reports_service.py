from __future__ import annotations

import unittest
from datetime import date, datetime, timedelta, timezone

from ponto.errors import NotFoundError, ValidationError
from ponto.models import Employee, PunchRecord, PunchSource, UserRole
from ponto.services.period import BalanceClassification
from ponto.services.reports import (
    build_dashboard,
    build_general_stats,
    build_history,
    build_monthly_report,
    build_time_bank,
    is_valid_month_year,
    month_bounds,
)
from ponto.services.timecalc import DayStatus, PunchKind

TODAY = date(2024, 5, 20)


def _record(cpf: str, day: date, kind: PunchKind, hhmm: str) -> PunchRecord:
    hour, minute = (int(part) for part in hhmm.split(":"))
    occurred_at = datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc) + timedelta(hours=3)
    return PunchRecord(
        employee_cpf=cpf,
        kind=kind,
        occurred_at=occurred_at,
        calendar_day=day,
        source=PunchSource.SELF_SERVICE,
    )


def _full_day(cpf: str, day: date, last_out: str = "17:48") -> list[PunchRecord]:
    return [
        _record(cpf, day, PunchKind.IN, "08:00"),
        _record(cpf, day, PunchKind.OUT, "12:00"),
        _record(cpf, day, PunchKind.IN, "13:00"),
        _record(cpf, day, PunchKind.OUT, last_out),
    ]


class _ScalarRows:
    def __init__(self, rows):
        self._rows = rows

    def all(self):  # type: ignore[no-untyped-def]
        return list(self._rows)


class _FakeReportsDB:
    def __init__(self, employees: list[Employee], records: list[PunchRecord]):
        self.employees = {employee.cpf: employee for employee in employees}
        self.records = records
        for index, record in enumerate(self.records, start=1):
            record.id = index

    def get(self, model, pk):  # type: ignore[no-untyped-def]
        if model is Employee:
            return self.employees.get(pk)
        return None

    def scalars(self, statement):  # type: ignore[no-untyped-def]
        sql = str(statement)
        if "FROM punch_records" in sql:
            return _ScalarRows(sorted(self.records, key=lambda row: (row.occurred_at, row.id)))
        if "FROM employees" in sql:
            active = [employee for employee in self.employees.values() if employee.is_active]
            return _ScalarRows(sorted(active, key=lambda employee: employee.full_name))
        return _ScalarRows([])


def _employee(cpf: str, name: str) -> Employee:
    return Employee(cpf=cpf, full_name=name, role=UserRole.EMPLOYEE, is_active=True)


class MonthValidationTests(unittest.TestCase):
    def test_month_window(self) -> None:
        self.assertTrue(is_valid_month_year(2024, 5, today=TODAY, min_year=2020))
        self.assertTrue(is_valid_month_year(2020, 1, today=TODAY, min_year=2020))
        self.assertFalse(is_valid_month_year(2024, 6, today=TODAY, min_year=2020))
        self.assertFalse(is_valid_month_year(2025, 1, today=TODAY, min_year=2020))
        self.assertFalse(is_valid_month_year(2019, 12, today=TODAY, min_year=2020))
        self.assertFalse(is_valid_month_year(2024, 0, today=TODAY, min_year=2020))
        self.assertFalse(is_valid_month_year(2024, 13, today=TODAY, min_year=2020))

    def test_month_bounds_handles_leap_year(self) -> None:
        self.assertEqual(month_bounds(2024, 2), (date(2024, 2, 1), date(2024, 2, 29)))
        self.assertEqual(month_bounds(2023, 12), (date(2023, 12, 1), date(2023, 12, 31)))


class MonthlyReportTests(unittest.TestCase):
    def setUp(self) -> None:
        self.cpf = "11111111111"
        records = [
            *_full_day(self.cpf, date(2024, 5, 6)),
            *_full_day(self.cpf, date(2024, 5, 7), last_out="21:00"),
            _record(self.cpf, date(2024, 5, 8), PunchKind.IN, "08:00"),
            *_full_day(self.cpf, date(2024, 4, 30)),
        ]
        self.fake_db = _FakeReportsDB([_employee(self.cpf, "Ana Lima")], records)

    def test_report_lists_days_with_punches(self) -> None:
        with self.assertLogs("ponto.reports", level="INFO"):
            report = build_monthly_report(self.fake_db, self.cpf, 2024, 5, today=TODAY)

        self.assertEqual([view.day for view in report.days], [date(2024, 5, 6), date(2024, 5, 7), date(2024, 5, 8)])
        self.assertEqual(report.days_with_records, 3)
        self.assertEqual(report.days_worked, 2)
        self.assertEqual(report.days_with_overtime, 1)
        self.assertEqual(report.summary.total_worked_minutes, 528 + 600)

    def test_trimmed_day_prints_synthetic_exit(self) -> None:
        report = build_monthly_report(self.fake_db, self.cpf, 2024, 5, today=TODAY)
        overtime_day = report.days[1]

        self.assertTrue(overtime_day.adjusted)
        self.assertEqual(overtime_day.worked_minutes, 600)
        self.assertEqual(overtime_day.overtime_minutes, 72)
        # 600 reported minutes minus the 240-minute morning leaves 13:00 + 6h.
        last_exit = overtime_day.punches[-1].occurred_at
        self.assertEqual(last_exit, datetime(2024, 5, 7, 22, 0, tzinfo=timezone.utc))
        self.assertFalse(report.days[0].adjusted)

    def test_empty_month_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError) as ctx:
            build_monthly_report(self.fake_db, self.cpf, 2024, 3, today=TODAY)
        self.assertEqual(ctx.exception.code, "NO_RECORDS_IN_PERIOD")

    def test_unknown_employee_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError) as ctx:
            build_monthly_report(self.fake_db, "000", 2024, 5, today=TODAY)
        self.assertEqual(ctx.exception.code, "EMPLOYEE_NOT_FOUND")

    def test_future_month_is_rejected(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            build_monthly_report(self.fake_db, self.cpf, 2024, 6, today=TODAY)
        self.assertEqual(ctx.exception.code, "INVALID_MONTH")


class DashboardTests(unittest.TestCase):
    def setUp(self) -> None:
        day = date(2024, 5, 6)
        self.day = day
        records = [
            *_full_day("111", day, last_out="18:48"),
            _record("222", day, PunchKind.IN, "08:00"),
        ]
        employees = [_employee("111", "Ana Lima"), _employee("222", "Bruno Reis"), _employee("333", "Carla Dias")]
        self.fake_db = _FakeReportsDB(employees, records)

    def test_single_day_overview(self) -> None:
        dashboard = build_dashboard(self.fake_db, self.day)
        by_cpf = {row.employee.cpf: row.overview for row in dashboard.rows}

        self.assertTrue(dashboard.is_single_day)
        self.assertEqual(by_cpf["111"].status, DayStatus.COMPLETE)
        self.assertEqual(by_cpf["111"].worked_minutes, 588)
        self.assertEqual(by_cpf["111"].dashboard_overtime_minutes, 60)
        self.assertEqual(by_cpf["222"].status, DayStatus.WORKING)
        self.assertEqual(by_cpf["333"].status, DayStatus.NO_RECORD)

        self.assertEqual(dashboard.stats.total_employees, 3)
        self.assertEqual(dashboard.stats.complete, 1)
        self.assertEqual(dashboard.stats.working, 1)
        self.assertEqual(dashboard.stats.no_record, 1)
        self.assertEqual(dashboard.stats.total_punches, 5)

    def test_filters_narrow_rows_but_not_stats(self) -> None:
        dashboard = build_dashboard(self.fake_db, self.day, name_filter="bruno")
        self.assertEqual([row.employee.cpf for row in dashboard.rows], ["222"])
        self.assertEqual(dashboard.stats.total_employees, 3)

        by_status = build_dashboard(self.fake_db, self.day, status_filter=DayStatus.NO_RECORD)
        self.assertEqual([row.employee.cpf for row in by_status.rows], ["333"])

    def test_status_filter_is_ignored_for_ranges(self) -> None:
        dashboard = build_dashboard(
            self.fake_db,
            self.day,
            self.day + timedelta(days=1),
            status_filter=DayStatus.NO_RECORD,
        )
        self.assertFalse(dashboard.is_single_day)
        self.assertEqual([row.employee.cpf for row in dashboard.rows], ["111", "222", "333"])

    def test_inverted_range_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            build_dashboard(self.fake_db, self.day, self.day - timedelta(days=1))


class TimeBankAndStatsTests(unittest.TestCase):
    def setUp(self) -> None:
        day = date(2024, 5, 6)
        records = [
            *_full_day("111", day),
            *_full_day("222", day, last_out="21:00"),
        ]
        self.day = day
        self.fake_db = _FakeReportsDB(
            [_employee("111", "Ana Lima"), _employee("222", "Bruno Reis"), _employee("333", "Carla Dias")],
            records,
        )

    def test_time_bank_sorted_by_balance(self) -> None:
        rows = build_time_bank(self.fake_db, self.day)

        self.assertEqual([row.employee.cpf for row in rows], ["222", "333", "111"])
        self.assertEqual(rows[0].entry.balance_minutes, 720 - 648)
        self.assertEqual(rows[0].entry.classification, BalanceClassification.CREDIT)
        self.assertEqual(rows[1].entry.classification, BalanceClassification.NEUTRAL)
        self.assertEqual(rows[2].entry.balance_minutes, 528 - 648)

    def test_general_stats(self) -> None:
        stats = build_general_stats(self.fake_db, 2024, 5, today=TODAY)

        self.assertEqual(stats.total_employees, 2)
        self.assertEqual(stats.total_worked_minutes, 528 + 600)
        self.assertAlmostEqual(stats.total_overtime_hours, 72 / 60)
        self.assertAlmostEqual(stats.average_days_worked_per_employee, 1.0)
        self.assertEqual(stats.most_worked.full_name, "Bruno Reis")
        self.assertEqual(stats.most_overtime.full_name, "Bruno Reis")

    def test_general_stats_without_overtime(self) -> None:
        fake_db = _FakeReportsDB([_employee("111", "Ana Lima")], _full_day("111", self.day))
        stats = build_general_stats(fake_db, 2024, 5, today=TODAY)
        self.assertIsNone(stats.most_overtime)
        self.assertEqual(stats.most_worked.value, 528)

    def test_general_stats_for_empty_month(self) -> None:
        stats = build_general_stats(self.fake_db, 2024, 1, today=TODAY)
        self.assertEqual(stats.total_employees, 0)
        self.assertEqual(stats.average_days_worked_per_employee, 0.0)
        self.assertIsNone(stats.most_worked)


class HistoryTests(unittest.TestCase):
    def test_week_includes_every_day_through_today(self) -> None:
        cpf = "111"
        fake_db = _FakeReportsDB([_employee(cpf, "Ana Lima")], _full_day(cpf, date(2024, 5, 15)))

        history = build_history(fake_db, cpf, "week", today=TODAY)

        self.assertEqual(history.start_date, date(2024, 5, 13))
        self.assertEqual(history.end_date, TODAY)
        self.assertEqual(len(history.days), 8)
        self.assertEqual(history.total_worked_minutes, 528)
        self.assertEqual(history.days[0].status, DayStatus.NO_RECORD)

    def test_month_spans_thirty_days_back(self) -> None:
        fake_db = _FakeReportsDB([_employee("111", "Ana Lima")], [])
        history = build_history(fake_db, "111", "month", today=TODAY)
        self.assertEqual(len(history.days), 31)
        self.assertEqual(history.start_date, date(2024, 4, 20))

    def test_unknown_period(self) -> None:
        fake_db = _FakeReportsDB([], [])
        with self.assertRaises(ValidationError) as ctx:
            build_history(fake_db, "111", "year", today=TODAY)  # type: ignore[arg-type]
        self.assertEqual(ctx.exception.code, "INVALID_PERIOD")


if __name__ == "__main__":
    unittest.main()
