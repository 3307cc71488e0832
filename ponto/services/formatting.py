from __future__ import annotations

from datetime import date, datetime, tzinfo

MONTH_NAMES_PT = (
    "Janeiro",
    "Fevereiro",
    "Março",
    "Abril",
    "Maio",
    "Junho",
    "Julho",
    "Agosto",
    "Setembro",
    "Outubro",
    "Novembro",
    "Dezembro",
)

WEEKDAY_NAMES_PT = (
    "segunda-feira",
    "terça-feira",
    "quarta-feira",
    "quinta-feira",
    "sexta-feira",
    "sábado",
    "domingo",
)


def format_minutes(minutes: float) -> str:
    value = max(0, int(minutes))
    return f"{value // 60}h {value % 60}m"


def format_hours(hours: float) -> str:
    if hours == 0:
        return "0h 0m"
    whole_hours = int(hours)
    minutes = round((hours - whole_hours) * 60)
    if minutes == 60:
        whole_hours, minutes = whole_hours + 1, 0
    return f"{whole_hours}h {minutes}m"


def format_balance(minutes: int, *, signed: bool = True) -> str:
    body = format_minutes(abs(minutes))
    if not signed:
        return body
    return f"+{body}" if minutes >= 0 else f"-{body}"


def format_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def format_date_with_weekday(value: date) -> str:
    return f"{WEEKDAY_NAMES_PT[value.weekday()]}, {format_date(value)}"


def format_clock(value: datetime, tz: tzinfo) -> str:
    return value.astimezone(tz).strftime("%H:%M")


def month_name(month: int) -> str:
    if 1 <= month <= 12:
        return MONTH_NAMES_PT[month - 1]
    return "Mês inválido"
