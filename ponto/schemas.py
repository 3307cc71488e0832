from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from ponto.models import PunchSource, UserRole
from ponto.services.period import BalanceClassification
from ponto.services.timecalc import DayStatus, PunchKind


class EmployeeLoginRequest(BaseModel):
    cpf: str = Field(min_length=1, max_length=14)
    password: str = Field(min_length=1)


class AdminLoginRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class AuthResponse(BaseModel):
    access_token: str
    token_type: Literal["bearer"] = "bearer"
    expires_in: int


class EmployeeRead(BaseModel):
    cpf: str
    full_name: str
    department: str | None
    email: str | None
    role: UserRole
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class PunchEventRead(BaseModel):
    kind: PunchKind
    occurred_at: datetime
    calendar_day: date
    latitude: float | None = None
    longitude: float | None = None
    accuracy_m: float | None = None
    approx_address: str | None = None

    model_config = ConfigDict(from_attributes=True)


class PunchCreateRequest(BaseModel):
    kind: PunchKind
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    accuracy_m: float | None = Field(default=None, ge=0)
    approx_address: str | None = Field(default=None, max_length=512)


class TodayStatusResponse(BaseModel):
    calendar_day: date
    events: list[PunchEventRead] = Field(default_factory=list)
    worked_minutes: int
    status: DayStatus
    can_clock_in: bool
    can_clock_out: bool
    limit_reached: bool
    remaining_punches: int


class PunchCreateResponse(BaseModel):
    event: PunchEventRead
    source: PunchSource
    today: TodayStatusResponse


class DailyRecordRead(BaseModel):
    day: date
    events: list[PunchEventRead] = Field(default_factory=list)
    worked_minutes: int
    display_worked_minutes: int
    overtime_minutes: int
    dashboard_overtime_minutes: int
    is_complete: bool
    status: DayStatus

    model_config = ConfigDict(from_attributes=True)


class PeriodSummaryResponse(BaseModel):
    employee_cpf: str
    start_date: date
    end_date: date
    days: list[DailyRecordRead] = Field(default_factory=list)
    total_worked_minutes: int
    total_overtime_hours: float | None = None
    average_worked_minutes: float
    max_daily_minutes: int
    min_daily_minutes: int
    is_single_day: bool
    status: DayStatus | None = None
    days_with_records: int
    days_worked: int
    days_with_overtime: int | None = None

    model_config = ConfigDict(from_attributes=True)


class HistoryResponse(BaseModel):
    employee_cpf: str
    start_date: date
    end_date: date
    total_worked_minutes: int
    days: list[DailyRecordRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class DashboardRowRead(BaseModel):
    employee: EmployeeRead
    events: list[PunchEventRead] = Field(default_factory=list)
    last_event: PunchEventRead | None = None
    worked_minutes: int
    overtime_minutes: int | None = None
    status: DayStatus | None = None


class DashboardStatsRead(BaseModel):
    total_employees: int
    working: int
    absent: int
    complete: int
    no_record: int
    total_worked_minutes: int
    average_worked_minutes: float
    total_punches: int


class DashboardResponse(BaseModel):
    start_date: date
    end_date: date
    is_single_day: bool
    rows: list[DashboardRowRead] = Field(default_factory=list)
    stats: DashboardStatsRead


class TimeBankEntryRead(BaseModel):
    employee_cpf: str
    full_name: str
    balance_minutes: int
    balance_label: str
    classification: BalanceClassification


class TimeBankResponse(BaseModel):
    start_date: date
    end_date: date
    entries: list[TimeBankEntryRead] = Field(default_factory=list)


class ReportDayRead(BaseModel):
    day: date
    punches: list[PunchEventRead] = Field(default_factory=list)
    worked_minutes: int
    overtime_minutes: int
    is_complete: bool
    adjusted: bool


class MonthlyReportStatsRead(BaseModel):
    total_worked_minutes: int
    total_overtime_hours: float
    average_worked_minutes: float
    max_daily_minutes: int
    min_daily_minutes: int


class MonthlyReportResponse(BaseModel):
    employee: EmployeeRead
    year: int
    month: int
    month_name: str
    start_date: date
    end_date: date
    days: list[ReportDayRead] = Field(default_factory=list)
    days_worked: int
    days_with_records: int
    days_with_overtime: int
    stats: MonthlyReportStatsRead


class EmployeeHighlightRead(BaseModel):
    full_name: str
    value: float

    model_config = ConfigDict(from_attributes=True)


class GeneralStatsResponse(BaseModel):
    year: int
    month: int
    total_employees: int
    total_worked_minutes: int
    total_overtime_hours: float
    average_days_worked_per_employee: float
    most_worked: EmployeeHighlightRead | None = None
    most_overtime: EmployeeHighlightRead | None = None

    model_config = ConfigDict(from_attributes=True)


class BatchEntryRequest(BaseModel):
    kind: PunchKind
    time: str = Field(description="Wall-clock time in HH:MM, reference timezone.")


class BatchPunchesRequest(BaseModel):
    calendar_day: date
    entries: list[BatchEntryRequest] = Field(default_factory=list)


class BatchPunchesResponse(BaseModel):
    employee_cpf: str
    calendar_day: date
    created: int
    skipped_duplicates: int
    events: list[PunchEventRead] = Field(default_factory=list)

