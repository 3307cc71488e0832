from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ponto.audit import log_audit
from ponto.db import get_db
from ponto.errors import ApiError
from ponto.models import AuditActorType, Employee
from ponto.schemas import (
    AuthResponse,
    EmployeeLoginRequest,
    HistoryResponse,
    PunchCreateRequest,
    PunchCreateResponse,
    PunchEventRead,
    TodayStatusResponse,
)
from ponto.security import (
    ROLE_EMPLOYEE,
    EmployeeIdentity,
    create_access_token,
    ensure_login_attempt_allowed,
    register_login_failure,
    register_login_success,
    require_employee,
    verify_password,
)
from ponto.services.punches import (
    TodayStatus,
    get_today_status,
    record_self_service_punch,
    to_punch_event,
)
from ponto.services.reports import build_history

router = APIRouter(tags=["employee"])


def _client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def _user_agent(request: Request) -> str | None:
    return request.headers.get("user-agent")


def _today_response(today: TodayStatus) -> TodayStatusResponse:
    return TodayStatusResponse(
        calendar_day=today.calendar_day,
        events=[PunchEventRead.model_validate(event) for event in today.events],
        worked_minutes=today.worked_minutes,
        status=today.status,
        can_clock_in=today.can_clock_in,
        can_clock_out=today.can_clock_out,
        limit_reached=today.limit_reached,
        remaining_punches=today.remaining_punches,
    )


@router.post("/api/auth/login", response_model=AuthResponse)
def employee_login(
    payload: EmployeeLoginRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> AuthResponse:
    cpf = payload.cpf.strip()
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
                actor_id=cpf,
                action="EMPLOYEE_LOGIN_FAIL",
                success=False,
                ip=ip,
                user_agent=user_agent,
                details={"reason": "TOO_MANY_ATTEMPTS"},
                request_id=request_id,
            )
            raise

    employee = db.get(Employee, cpf)
    if employee is None or not employee.is_active or not verify_password(payload.password, employee.password_hash):
        if ip:
            register_login_failure(ip)
        log_audit(
            db,
            actor_type=AuditActorType.SYSTEM,
            actor_id=cpf,
            action="EMPLOYEE_LOGIN_FAIL",
            success=False,
            ip=ip,
            user_agent=user_agent,
            details={"reason": "INVALID_CREDENTIALS"},
            request_id=request_id,
        )
        raise ApiError(status_code=401, code="INVALID_CREDENTIALS", message="Invalid credentials.")

    if ip:
        register_login_success(ip)

    access_token, expires_in = create_access_token(
        sub=employee.cpf,
        role=ROLE_EMPLOYEE,
        full_name=employee.full_name,
    )
    request.state.actor = "employee"
    request.state.actor_id = employee.cpf
    log_audit(
        db,
        actor_type=AuditActorType.EMPLOYEE,
        actor_id=employee.cpf,
        action="EMPLOYEE_LOGIN_SUCCESS",
        success=True,
        ip=ip,
        user_agent=user_agent,
        request_id=request_id,
    )
    return AuthResponse(access_token=access_token, expires_in=expires_in)


@router.get("/api/me/today", response_model=TodayStatusResponse)
def read_today(
    identity: EmployeeIdentity = Depends(require_employee),
    db: Session = Depends(get_db),
) -> TodayStatusResponse:
    return _today_response(get_today_status(db, identity.cpf))


@router.post("/api/me/punches", response_model=PunchCreateResponse, status_code=201)
def create_punch(
    payload: PunchCreateRequest,
    identity: EmployeeIdentity = Depends(require_employee),
    db: Session = Depends(get_db),
) -> PunchCreateResponse:
    record, today = record_self_service_punch(
        db,
        identity.cpf,
        payload.kind,
        latitude=payload.latitude,
        longitude=payload.longitude,
        accuracy_m=payload.accuracy_m,
        approx_address=payload.approx_address,
    )
    return PunchCreateResponse(
        event=PunchEventRead.model_validate(to_punch_event(record)),
        source=record.source,
        today=_today_response(today),
    )


@router.get("/api/me/history", response_model=HistoryResponse)
def read_history(
    period: Literal["week", "month"] = Query(default="week"),
    identity: EmployeeIdentity = Depends(require_employee),
    db: Session = Depends(get_db),
) -> HistoryResponse:
    return HistoryResponse.model_validate(build_history(db, identity.cpf, period))
