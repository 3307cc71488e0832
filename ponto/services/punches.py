from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from ponto.errors import ApiError, NotFoundError, ValidationError
from ponto.models import Employee, PunchRecord, PunchSource
from ponto.services.batch_entry import BatchEntry, validate_batch_entries
from ponto.services.timecalc import (
    DayStatus,
    PunchEvent,
    PunchKind,
    calculate_worked_minutes,
    classify_status,
    sort_punches,
)
from ponto.settings import get_attendance_timezone, get_settings

logger = logging.getLogger("ponto.punches")

EventKey = tuple[PunchKind, datetime, date]


@dataclass(frozen=True)
class TodayStatus:
    calendar_day: date
    events: tuple[PunchEvent, ...]
    worked_minutes: int
    status: DayStatus
    can_clock_in: bool
    can_clock_out: bool
    limit_reached: bool
    remaining_punches: int


@dataclass(frozen=True)
class AppendResult:
    created: tuple[PunchRecord, ...]
    skipped_duplicates: int


def _normalize_ts(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _event_key(event: PunchEvent) -> EventKey:
    return PunchKind(event.kind), _normalize_ts(event.occurred_at), event.calendar_day


def to_punch_event(record: PunchRecord) -> PunchEvent:
    return PunchEvent(
        kind=PunchKind(record.kind),
        occurred_at=_normalize_ts(record.occurred_at),
        calendar_day=record.calendar_day,
        latitude=record.latitude,
        longitude=record.longitude,
        accuracy_m=record.accuracy_m,
        approx_address=record.approx_address,
    )


def local_today(now: datetime | None = None) -> date:
    reference = _normalize_ts(now) if now is not None else datetime.now(timezone.utc)
    return reference.astimezone(get_attendance_timezone()).date()


def get_employee_or_404(db: Session, employee_cpf: str) -> Employee:
    employee = db.get(Employee, employee_cpf)
    if employee is None:
        raise NotFoundError(code="EMPLOYEE_NOT_FOUND", message="Employee not found.")
    return employee


def list_employees(db: Session, *, active_only: bool = True) -> list[Employee]:
    stmt = select(Employee).order_by(Employee.full_name.asc(), Employee.cpf.asc())
    if active_only:
        stmt = stmt.where(Employee.is_active.is_(True))
    return list(db.scalars(stmt).all())


def _load_records(
    db: Session,
    employee_cpfs: Sequence[str],
    start_date: date,
    end_date: date,
) -> list[PunchRecord]:
    if not employee_cpfs:
        return []
    return list(
        db.scalars(
            select(PunchRecord)
            .where(
                PunchRecord.employee_cpf.in_(list(employee_cpfs)),
                PunchRecord.calendar_day >= start_date,
                PunchRecord.calendar_day <= end_date,
            )
            .order_by(PunchRecord.occurred_at.asc(), PunchRecord.id.asc())
        ).all()
    )


def load_punch_maps(
    db: Session,
    employee_cpfs: Sequence[str],
    start_date: date,
    end_date: date,
) -> dict[str, dict[date, list[PunchEvent]]]:
    """Per-employee day maps for a date range, keyed by the day each punch was filed under."""
    maps: dict[str, dict[date, list[PunchEvent]]] = {cpf: {} for cpf in employee_cpfs}
    for record in _load_records(db, employee_cpfs, start_date, end_date):
        if not start_date <= record.calendar_day <= end_date:
            continue
        day_map = maps.setdefault(record.employee_cpf, {})
        day_map.setdefault(record.calendar_day, []).append(to_punch_event(record))
    return maps


def load_punch_map(
    db: Session,
    employee_cpf: str,
    start_date: date,
    end_date: date,
) -> dict[date, list[PunchEvent]]:
    return load_punch_maps(db, [employee_cpf], start_date, end_date).get(employee_cpf, {})


def append_punches(
    db: Session,
    employee_cpf: str,
    events: Iterable[PunchEvent],
    *,
    source: PunchSource,
    created_by: str | None = None,
) -> AppendResult:
    """Store new punches for an employee, skipping ones already on file.

    Two punches are the same when kind, instant and filed day all match, so
    re-submitting a day adds nothing. Existing rows are never touched.
    """
    incoming = list(events)
    if not incoming:
        return AppendResult(created=(), skipped_duplicates=0)

    days = [event.calendar_day for event in incoming]
    existing = load_punch_map(db, employee_cpf, min(days), max(days))
    seen: set[EventKey] = {_event_key(event) for day_events in existing.values() for event in day_events}

    created: list[PunchRecord] = []
    skipped = 0
    for event in incoming:
        key = _event_key(event)
        if key in seen:
            skipped += 1
            continue
        seen.add(key)
        record = PunchRecord(
            employee_cpf=employee_cpf,
            kind=PunchKind(event.kind),
            occurred_at=_normalize_ts(event.occurred_at),
            calendar_day=event.calendar_day,
            latitude=event.latitude,
            longitude=event.longitude,
            accuracy_m=event.accuracy_m,
            approx_address=event.approx_address,
            source=source,
            created_by=created_by,
        )
        db.add(record)
        created.append(record)

    if created:
        db.commit()
        for record in created:
            db.refresh(record)
    return AppendResult(created=tuple(created), skipped_duplicates=skipped)


def resolve_today_status(
    calendar_day: date,
    events: Iterable[PunchEvent],
    *,
    max_punches: int,
) -> TodayStatus:
    ordered = tuple(sort_punches(events))
    limit_reached = len(ordered) >= max_punches
    if limit_reached:
        can_clock_in = can_clock_out = False
    elif not ordered:
        can_clock_in, can_clock_out = True, False
    else:
        last_is_entry = ordered[-1].kind == PunchKind.IN
        can_clock_in, can_clock_out = not last_is_entry, last_is_entry
    return TodayStatus(
        calendar_day=calendar_day,
        events=ordered,
        worked_minutes=calculate_worked_minutes(ordered),
        status=classify_status(ordered, is_single_day=True),
        can_clock_in=can_clock_in,
        can_clock_out=can_clock_out,
        limit_reached=limit_reached,
        remaining_punches=max(0, max_punches - len(ordered)),
    )


def get_today_status(db: Session, employee_cpf: str, *, now: datetime | None = None) -> TodayStatus:
    today = local_today(now)
    day_map = load_punch_map(db, employee_cpf, today, today)
    return resolve_today_status(
        today,
        day_map.get(today, []),
        max_punches=get_settings().max_punches_per_day,
    )


def _ensure_punch_allowed(today: TodayStatus, kind: PunchKind, occurred_at: datetime, min_spacing: timedelta) -> None:
    if today.limit_reached:
        raise ValidationError(
            code="DAILY_LIMIT_REACHED",
            message="Daily punch limit reached.",
        )
    if not today.events:
        if kind != PunchKind.IN:
            raise ValidationError(
                code="FIRST_PUNCH_MUST_BE_IN",
                message="The first punch of the day must be an entry.",
            )
        return

    last = today.events[-1]
    if last.kind == kind:
        raise ValidationError(
            code="CONSECUTIVE_SAME_KIND",
            message="Cannot register two entries or two exits in a row.",
        )
    if occurred_at - last.occurred_at < min_spacing:
        raise ValidationError(
            code="MIN_SPACING",
            message="Wait at least one minute between punches.",
        )


def record_self_service_punch(
    db: Session,
    employee_cpf: str,
    kind: PunchKind,
    *,
    latitude: float | None = None,
    longitude: float | None = None,
    accuracy_m: float | None = None,
    approx_address: str | None = None,
    now: datetime | None = None,
) -> tuple[PunchRecord, TodayStatus]:
    employee = get_employee_or_404(db, employee_cpf)
    if not employee.is_active:
        raise ApiError(
            status_code=403,
            code="EMPLOYEE_INACTIVE",
            message="Inactive employee cannot register punches.",
        )

    settings = get_settings()
    occurred_at = _normalize_ts(now) if now is not None else datetime.now(timezone.utc)
    today = get_today_status(db, employee_cpf, now=occurred_at)
    _ensure_punch_allowed(
        today,
        PunchKind(kind),
        occurred_at,
        timedelta(minutes=settings.min_punch_spacing_minutes),
    )

    event = PunchEvent(
        kind=PunchKind(kind),
        occurred_at=occurred_at,
        calendar_day=today.calendar_day,
        latitude=latitude,
        longitude=longitude,
        accuracy_m=accuracy_m,
        approx_address=approx_address,
    )
    result = append_punches(
        db,
        employee_cpf,
        [event],
        source=PunchSource.SELF_SERVICE,
        created_by=employee_cpf,
    )
    if not result.created:
        raise ApiError(
            status_code=409,
            code="DUPLICATE_PUNCH",
            message="This punch is already registered.",
        )

    logger.info(
        "punch_recorded",
        extra={
            "employee_cpf": employee_cpf,
            "kind": event.kind.value,
            "calendar_day": today.calendar_day,
            "punch_index": len(today.events) + 1,
        },
    )
    updated = resolve_today_status(
        today.calendar_day,
        [*today.events, event],
        max_punches=settings.max_punches_per_day,
    )
    return result.created[0], updated


def record_batch_punches(
    db: Session,
    employee_cpf: str,
    calendar_day: date,
    entries: Sequence[BatchEntry],
    *,
    created_by: str,
) -> AppendResult:
    get_employee_or_404(db, employee_cpf)
    settings = get_settings()
    events = validate_batch_entries(
        calendar_day,
        entries,
        get_attendance_timezone(),
        max_entries=settings.max_punches_per_day,
        min_spacing_minutes=settings.min_punch_spacing_minutes,
    )
    result = append_punches(
        db,
        employee_cpf,
        events,
        source=PunchSource.BATCH,
        created_by=created_by,
    )
    logger.info(
        "batch_punches_recorded",
        extra={
            "employee_cpf": employee_cpf,
            "calendar_day": calendar_day,
            "created_count": len(result.created),
            "skipped_duplicates": result.skipped_duplicates,
            "created_by": created_by,
        },
    )
    return result
