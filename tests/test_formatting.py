from __future__ import annotations

import unittest
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from ponto.services.formatting import (
    format_balance,
    format_clock,
    format_date,
    format_date_with_weekday,
    format_hours,
    format_minutes,
    month_name,
)


class FormattingTests(unittest.TestCase):
    def test_format_minutes_floors(self) -> None:
        self.assertEqual(format_minutes(528), "8h 48m")
        self.assertEqual(format_minutes(60), "1h 0m")
        self.assertEqual(format_minutes(59.9), "0h 59m")
        self.assertEqual(format_minutes(0), "0h 0m")

    def test_format_hours_rounds_minutes(self) -> None:
        self.assertEqual(format_hours(0), "0h 0m")
        self.assertEqual(format_hours(1.2), "1h 12m")
        self.assertEqual(format_hours(1.9999), "2h 0m")

    def test_format_balance_is_signed(self) -> None:
        self.assertEqual(format_balance(60), "+1h 0m")
        self.assertEqual(format_balance(-1), "-0h 1m")
        self.assertEqual(format_balance(0), "+0h 0m")
        self.assertEqual(format_balance(-90, signed=False), "1h 30m")

    def test_dates_and_clock(self) -> None:
        self.assertEqual(format_date(date(2024, 5, 6)), "06/05/2024")
        self.assertEqual(format_date_with_weekday(date(2024, 5, 6)), "segunda-feira, 06/05/2024")
        instant = datetime(2024, 5, 6, 11, 5, tzinfo=timezone.utc)
        self.assertEqual(format_clock(instant, ZoneInfo("America/Sao_Paulo")), "08:05")

    def test_month_name(self) -> None:
        self.assertEqual(month_name(3), "Março")
        self.assertEqual(month_name(13), "Mês inválido")


if __name__ == "__main__":
    unittest.main()
