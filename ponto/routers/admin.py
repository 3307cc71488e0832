from __future__ import annotations

from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from ponto.audit import log_audit
from ponto.db import get_db
from ponto.errors import ApiError
from ponto.models import AuditActorType
from ponto.schemas import (
    AdminLoginRequest,
    AuthResponse,
    BatchPunchesRequest,
    BatchPunchesResponse,
    DashboardResponse,
    DashboardRowRead,
    DashboardStatsRead,
    EmployeeRead,
    GeneralStatsResponse,
    MonthlyReportResponse,
    MonthlyReportStatsRead,
    PeriodSummaryResponse,
    PunchEventRead,
    ReportDayRead,
    TimeBankEntryRead,
    TimeBankResponse,
)
from ponto.security import (
    ROLE_ADMIN,
    create_access_token,
    ensure_login_attempt_allowed,
    register_login_failure,
    register_login_success,
    require_admin,
    verify_admin_credentials,
)
from ponto.services.batch_entry import BatchEntry
from ponto.services.exports import (
    PDF_MEDIA_TYPE,
    XLSX_MEDIA_TYPE,
    build_monthly_report_pdf_bytes,
    build_monthly_report_xlsx_bytes,
)
from ponto.services.formatting import format_balance, month_name
from ponto.services.period import resolve_range
from ponto.services.punches import list_employees, record_batch_punches, to_punch_event
from ponto.services.reports import (
    Dashboard,
    MonthlyReport,
    build_dashboard,
    build_general_stats,
    build_monthly_report,
    build_period_summary,
    build_time_bank,
)
from ponto.services.timecalc import DayStatus

router = APIRouter(tags=["admin"])


def _client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def _user_agent(request: Request) -> str | None:
    return request.headers.get("user-agent")


def _admin_actor(claims: dict[str, Any]) -> str:
    return str(claims.get("sub") or "admin")


@router.post("/api/admin/auth/login", response_model=AuthResponse)
def admin_login(
    payload: AdminLoginRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> AuthResponse:
    username = payload.username.strip()
    ip = _client_ip(request)
    user_agent = _user_agent(request)
    request_id = getattr(request.state, "request_id", None)
    request.state.actor = "system"
    request.state.actor_id = "system"

    if ip:
        try:
            ensure_login_attempt_allowed(ip)
        except ApiError:
            log_audit(
                db,
                actor_type=AuditActorType.SYSTEM,
                actor_id="admin",
                action="ADMIN_LOGIN_FAIL",
                success=False,
                ip=ip,
                user_agent=user_agent,
                details={"reason": "TOO_MANY_ATTEMPTS"},
                request_id=request_id,
            )
            raise

    if not verify_admin_credentials(username, payload.password):
        if ip:
            register_login_failure(ip)
        log_audit(
            db,
            actor_type=AuditActorType.SYSTEM,
            actor_id=username,
            action="ADMIN_LOGIN_FAIL",
            success=False,
            ip=ip,
            user_agent=user_agent,
            details={"reason": "INVALID_CREDENTIALS"},
            request_id=request_id,
        )
        raise ApiError(status_code=401, code="INVALID_CREDENTIALS", message="Invalid credentials.")

    if ip:
        register_login_success(ip)

    access_token, expires_in = create_access_token(sub=username, role=ROLE_ADMIN)
    request.state.actor = "admin"
    request.state.actor_id = username
    log_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id=username,
        action="ADMIN_LOGIN_SUCCESS",
        success=True,
        ip=ip,
        user_agent=user_agent,
        request_id=request_id,
    )
    return AuthResponse(access_token=access_token, expires_in=expires_in)


@router.get(
    "/api/admin/employees",
    response_model=list[EmployeeRead],
    dependencies=[Depends(require_admin)],
)
def list_admin_employees(
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> list[EmployeeRead]:
    employees = list_employees(db, active_only=not include_inactive)
    return [EmployeeRead.model_validate(employee) for employee in employees]


def _dashboard_response(dashboard: Dashboard) -> DashboardResponse:
    # Status and overtime only mean something for a single day.
    single_day = dashboard.is_single_day
    rows = [
        DashboardRowRead(
            employee=EmployeeRead.model_validate(row.employee),
            events=[PunchEventRead.model_validate(event) for event in row.overview.events],
            last_event=(
                PunchEventRead.model_validate(row.overview.last_event)
                if row.overview.last_event is not None
                else None
            ),
            worked_minutes=row.overview.worked_minutes,
            overtime_minutes=row.overview.dashboard_overtime_minutes if single_day else None,
            status=row.overview.status if single_day else None,
        )
        for row in dashboard.rows
    ]
    stats = dashboard.stats
    return DashboardResponse(
        start_date=dashboard.start_date,
        end_date=dashboard.end_date,
        is_single_day=single_day,
        rows=rows,
        stats=DashboardStatsRead(
            total_employees=stats.total_employees,
            working=stats.working,
            absent=stats.absent,
            complete=stats.complete,
            no_record=stats.no_record,
            total_worked_minutes=stats.total_worked_minutes,
            average_worked_minutes=stats.average_worked_minutes,
            total_punches=stats.total_punches,
        ),
    )


@router.get(
    "/api/admin/dashboard",
    response_model=DashboardResponse,
    dependencies=[Depends(require_admin)],
)
def admin_dashboard(
    start_date: date = Query(...),
    end_date: date | None = Query(default=None),
    cpf: str | None = Query(default=None),
    name: str | None = Query(default=None),
    status: DayStatus | None = Query(default=None),
    db: Session = Depends(get_db),
) -> DashboardResponse:
    dashboard = build_dashboard(
        db,
        start_date,
        end_date,
        cpf_filter=cpf,
        name_filter=name,
        status_filter=status,
    )
    return _dashboard_response(dashboard)


@router.get(
    "/api/admin/employees/{employee_cpf}/period",
    response_model=PeriodSummaryResponse,
    dependencies=[Depends(require_admin)],
)
def employee_period_summary(
    employee_cpf: str,
    start_date: date = Query(...),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
) -> PeriodSummaryResponse:
    summary = build_period_summary(db, employee_cpf, start_date, end_date)
    response = PeriodSummaryResponse.model_validate(summary)
    if summary.is_single_day:
        return response
    # Ranges only report the worked total.
    return response.model_copy(
        update={
            "days": [],
            "total_overtime_hours": None,
            "status": None,
            "days_with_overtime": None,
        }
    )


@router.get(
    "/api/admin/time-bank",
    response_model=TimeBankResponse,
    dependencies=[Depends(require_admin)],
)
def admin_time_bank(
    start_date: date = Query(...),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
) -> TimeBankResponse:
    start, end = resolve_range(start_date, end_date)
    rows = build_time_bank(db, start, end)
    return TimeBankResponse(
        start_date=start,
        end_date=end,
        entries=[
            TimeBankEntryRead(
                employee_cpf=row.employee.cpf,
                full_name=row.employee.full_name,
                balance_minutes=row.entry.balance_minutes,
                balance_label=format_balance(row.entry.balance_minutes),
                classification=row.entry.classification,
            )
            for row in rows
        ],
    )


def _monthly_report_response(report: MonthlyReport) -> MonthlyReportResponse:
    summary = report.summary
    return MonthlyReportResponse(
        employee=EmployeeRead.model_validate(report.employee),
        year=report.year,
        month=report.month,
        month_name=month_name(report.month),
        start_date=summary.start_date,
        end_date=summary.end_date,
        days=[
            ReportDayRead(
                day=day.day,
                punches=[PunchEventRead.model_validate(event) for event in day.punches],
                worked_minutes=day.worked_minutes,
                overtime_minutes=day.overtime_minutes,
                is_complete=day.is_complete,
                adjusted=day.adjusted,
            )
            for day in report.days
        ],
        days_worked=report.days_worked,
        days_with_records=report.days_with_records,
        days_with_overtime=report.days_with_overtime,
        stats=MonthlyReportStatsRead(
            total_worked_minutes=summary.total_worked_minutes,
            total_overtime_hours=summary.total_overtime_hours,
            average_worked_minutes=summary.average_worked_minutes,
            max_daily_minutes=summary.max_daily_minutes,
            min_daily_minutes=summary.min_daily_minutes,
        ),
    )


@router.get(
    "/api/admin/reports/monthly",
    response_model=MonthlyReportResponse,
    dependencies=[Depends(require_admin)],
)
def monthly_report(
    employee_cpf: str = Query(...),
    year: int = Query(...),
    month: int = Query(...),
    db: Session = Depends(get_db),
) -> MonthlyReportResponse:
    report = build_monthly_report(db, employee_cpf, year, month)
    return _monthly_report_response(report)


def _audit_export(
    db: Session,
    request: Request,
    claims: dict[str, Any],
    *,
    action: str,
    employee_cpf: str,
    year: int,
    month: int,
) -> None:
    log_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id=_admin_actor(claims),
        action=action,
        success=True,
        entity_type="monthly_report",
        entity_id=employee_cpf,
        ip=_client_ip(request),
        user_agent=_user_agent(request),
        details={"year": year, "month": month},
        request_id=getattr(request.state, "request_id", None),
    )


@router.get("/api/admin/reports/monthly.xlsx")
def monthly_report_xlsx(
    request: Request,
    employee_cpf: str = Query(...),
    year: int = Query(...),
    month: int = Query(...),
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Response:
    report = build_monthly_report(db, employee_cpf, year, month)
    payload = build_monthly_report_xlsx_bytes(report)
    _audit_export(
        db,
        request,
        claims,
        action="MONTHLY_REPORT_EXPORT_XLSX",
        employee_cpf=employee_cpf,
        year=year,
        month=month,
    )
    return Response(
        content=payload,
        media_type=XLSX_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="ponto-{employee_cpf}-{year}-{month:02d}.xlsx"',
        },
    )


@router.get("/api/admin/reports/monthly.pdf")
def monthly_report_pdf(
    request: Request,
    employee_cpf: str = Query(...),
    year: int = Query(...),
    month: int = Query(...),
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Response:
    report = build_monthly_report(db, employee_cpf, year, month)
    payload = build_monthly_report_pdf_bytes(report)
    _audit_export(
        db,
        request,
        claims,
        action="MONTHLY_REPORT_EXPORT_PDF",
        employee_cpf=employee_cpf,
        year=year,
        month=month,
    )
    return Response(
        content=payload,
        media_type=PDF_MEDIA_TYPE,
        headers={
            "Content-Disposition": f'attachment; filename="ponto-{employee_cpf}-{year}-{month:02d}.pdf"',
        },
    )


@router.get(
    "/api/admin/reports/general-stats",
    response_model=GeneralStatsResponse,
    dependencies=[Depends(require_admin)],
)
def general_stats(
    year: int = Query(...),
    month: int = Query(...),
    db: Session = Depends(get_db),
) -> GeneralStatsResponse:
    return GeneralStatsResponse.model_validate(build_general_stats(db, year, month))


@router.post(
    "/api/admin/employees/{employee_cpf}/batch-punches",
    response_model=BatchPunchesResponse,
    status_code=201,
)
def create_batch_punches(
    employee_cpf: str,
    payload: BatchPunchesRequest,
    request: Request,
    claims: dict[str, Any] = Depends(require_admin),
    db: Session = Depends(get_db),
) -> BatchPunchesResponse:
    actor_id = _admin_actor(claims)
    result = record_batch_punches(
        db,
        employee_cpf,
        payload.calendar_day,
        [BatchEntry(kind=entry.kind, time_of_day=entry.time) for entry in payload.entries],
        created_by=actor_id,
    )
    log_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id=actor_id,
        action="BATCH_PUNCHES_CREATE",
        success=True,
        entity_type="employee",
        entity_id=employee_cpf,
        ip=_client_ip(request),
        user_agent=_user_agent(request),
        details={
            "calendar_day": payload.calendar_day.isoformat(),
            "created": len(result.created),
            "skipped_duplicates": result.skipped_duplicates,
        },
        request_id=getattr(request.state, "request_id", None),
    )
    return BatchPunchesResponse(
        employee_cpf=employee_cpf,
        calendar_day=payload.calendar_day,
        created=len(result.created),
        skipped_duplicates=result.skipped_duplicates,
        events=[PunchEventRead.model_validate(to_punch_event(record)) for record in result.created],
    )
