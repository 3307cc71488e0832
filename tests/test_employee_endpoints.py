from __future__ import annotations

import unittest
from collections.abc import Generator
from unittest.mock import patch

from fastapi.testclient import TestClient

from ponto.db import get_db
from ponto.main import app
from ponto.models import AuditLog, Employee, PunchRecord, UserRole
from ponto.security import EmployeeIdentity, _FAILED_ATTEMPTS, hash_password, require_employee

CPF = "12345678901"


def _override_get_db(fake_db):
    def _override() -> Generator[object, None, None]:
        yield fake_db

    return _override


class _ScalarRows:
    def __init__(self, rows):
        self._rows = rows

    def all(self):  # type: ignore[no-untyped-def]
        return list(self._rows)


class _FakeEmployeeDB:
    def __init__(self, employee: Employee):
        self.employee = employee
        self.records: list[PunchRecord] = []
        self.audit_rows: list[AuditLog] = []

    def get(self, model, pk):  # type: ignore[no-untyped-def]
        if model is Employee and pk == self.employee.cpf:
            return self.employee
        return None

    def scalars(self, statement):  # type: ignore[no-untyped-def]
        if "FROM punch_records" in str(statement):
            return _ScalarRows(sorted(self.records, key=lambda row: (row.occurred_at, row.id)))
        return _ScalarRows([])

    def add(self, obj: object) -> None:
        if isinstance(obj, PunchRecord):
            obj.id = len(self.records) + 1
            self.records.append(obj)
        elif isinstance(obj, AuditLog):
            self.audit_rows.append(obj)

    def commit(self) -> None:
        return

    def refresh(self, _obj: object) -> None:
        return

    def rollback(self) -> None:
        return


def _employee(*, is_active: bool = True) -> Employee:
    return Employee(
        cpf=CPF,
        full_name="Maria Souza",
        role=UserRole.EMPLOYEE,
        is_active=is_active,
        password_hash=hash_password("senha-123"),
    )


class EmployeeSelfServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.fake_db = _FakeEmployeeDB(_employee())
        app.dependency_overrides[get_db] = _override_get_db(self.fake_db)
        app.dependency_overrides[require_employee] = lambda: EmployeeIdentity(cpf=CPF, full_name="Maria Souza")
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def test_today_without_punches(self) -> None:
        response = self.client.get("/api/me/today")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["events"], [])
        self.assertEqual(body["status"], "NO_RECORD")
        self.assertTrue(body["can_clock_in"])
        self.assertFalse(body["can_clock_out"])
        self.assertEqual(body["remaining_punches"], 4)

    def test_first_punch_is_entry(self) -> None:
        response = self.client.post(
            "/api/me/punches",
            json={"kind": "IN", "latitude": -23.55, "longitude": -46.63, "accuracy_m": 12.5},
        )
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body["event"]["kind"], "IN")
        self.assertEqual(body["event"]["latitude"], -23.55)
        self.assertEqual(body["source"], "SELF_SERVICE")
        self.assertTrue(body["today"]["can_clock_out"])
        self.assertEqual(len(self.fake_db.records), 1)

    def test_exit_first_is_rejected(self) -> None:
        response = self.client.post("/api/me/punches", json={"kind": "OUT"})
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "FIRST_PUNCH_MUST_BE_IN")
        self.assertEqual(self.fake_db.records, [])

    def test_unknown_kind_is_validation_error(self) -> None:
        response = self.client.post("/api/me/punches", json={"kind": "LUNCH"})
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"]["code"], "VALIDATION_ERROR")

    def test_history_week(self) -> None:
        response = self.client.get("/api/me/history", params={"period": "week"})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["employee_cpf"], CPF)
        self.assertEqual(len(body["days"]), 8)
        self.assertEqual(body["total_worked_minutes"], 0)

    def test_history_rejects_unknown_period(self) -> None:
        response = self.client.get("/api/me/history", params={"period": "year"})
        self.assertEqual(response.status_code, 422)


class EmployeeLoginTests(unittest.TestCase):
    ip = "198.51.100.20"

    def setUp(self) -> None:
        self.fake_db = _FakeEmployeeDB(_employee())
        app.dependency_overrides[get_db] = _override_get_db(self.fake_db)
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        _FAILED_ATTEMPTS.pop(self.ip, None)

    def _login(self, cpf: str, password: str):  # type: ignore[no-untyped-def]
        return self.client.post(
            "/api/auth/login",
            json={"cpf": cpf, "password": password},
            headers={"x-forwarded-for": self.ip},
        )

    def test_valid_password_issues_token(self) -> None:
        with patch("ponto.routers.employee.create_access_token", return_value=("signed-token", 3600)) as token:
            response = self._login(CPF, "senha-123")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["access_token"], "signed-token")
        token.assert_called_once_with(sub=CPF, role="employee", full_name="Maria Souza")
        self.assertEqual(self.fake_db.audit_rows[-1].action, "EMPLOYEE_LOGIN_SUCCESS")

    def test_wrong_password(self) -> None:
        response = self._login(CPF, "errada")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"]["code"], "INVALID_CREDENTIALS")
        self.assertEqual(self.fake_db.audit_rows[-1].action, "EMPLOYEE_LOGIN_FAIL")

    def test_inactive_employee_cannot_log_in(self) -> None:
        self.fake_db.employee.is_active = False
        response = self._login(CPF, "senha-123")
        self.assertEqual(response.status_code, 401)

    def test_repeated_failures_are_throttled(self) -> None:
        for _ in range(10):
            self._login(CPF, "errada")
        response = self._login(CPF, "senha-123")
        self.assertEqual(response.status_code, 429)
        self.assertEqual(response.json()["error"]["code"], "TOO_MANY_ATTEMPTS")


if __name__ == "__main__":
    unittest.main()
