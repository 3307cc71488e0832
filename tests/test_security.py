from __future__ import annotations

import unittest
from unittest.mock import patch

from ponto.errors import ApiError
from ponto.security import (
    ROLE_ADMIN,
    ROLE_EMPLOYEE,
    _FAILED_ATTEMPTS,
    create_access_token,
    decode_token,
    ensure_login_attempt_allowed,
    hash_password,
    register_login_failure,
    register_login_success,
    verify_admin_credentials,
    verify_password,
)
from ponto.settings import Settings


def _settings(**overrides) -> Settings:  # type: ignore[no-untyped-def]
    values = {
        "jwt_secret": "test-secret-with-enough-entropy",
        "admin_user": "admin",
        "admin_pass_hash": "",
    }
    values.update(overrides)
    return Settings(**values)


class PasswordTests(unittest.TestCase):
    def test_hash_and_verify(self) -> None:
        password_hash = hash_password("s3nha-forte")
        self.assertTrue(verify_password("s3nha-forte", password_hash))
        self.assertFalse(verify_password("errada", password_hash))

    def test_missing_or_garbage_hash_never_verifies(self) -> None:
        self.assertFalse(verify_password("anything", None))
        self.assertFalse(verify_password("anything", ""))
        self.assertFalse(verify_password("anything", "not-a-bcrypt-hash"))

    def test_admin_credentials_come_from_environment(self) -> None:
        settings = _settings(admin_pass_hash=f'"{hash_password("admin-pass")}"')
        with patch("ponto.security.get_settings", return_value=settings):
            self.assertTrue(verify_admin_credentials("admin", "admin-pass"))
            self.assertFalse(verify_admin_credentials("admin", "wrong"))
            self.assertFalse(verify_admin_credentials("root", "admin-pass"))

    def test_admin_without_configured_hash_is_rejected(self) -> None:
        with patch("ponto.security.get_settings", return_value=_settings()):
            self.assertFalse(verify_admin_credentials("admin", ""))


class TokenTests(unittest.TestCase):
    def test_round_trip_keeps_subject_and_role(self) -> None:
        with patch("ponto.security.get_settings", return_value=_settings()):
            token, expires_in = create_access_token(sub="12345678901", role=ROLE_EMPLOYEE, full_name="Maria")
            claims = decode_token(token, expected_role=ROLE_EMPLOYEE)

        self.assertEqual(expires_in, 3600)
        self.assertEqual(claims["sub"], "12345678901")
        self.assertEqual(claims["full_name"], "Maria")
        self.assertEqual(claims["typ"], "access")

    def test_role_mismatch_is_forbidden(self) -> None:
        with patch("ponto.security.get_settings", return_value=_settings()):
            token, _ = create_access_token(sub="12345678901", role=ROLE_EMPLOYEE)
            with self.assertRaises(ApiError) as ctx:
                decode_token(token, expected_role=ROLE_ADMIN)
        self.assertEqual(ctx.exception.status_code, 403)
        self.assertEqual(ctx.exception.code, "FORBIDDEN")

    def test_token_signed_with_other_secret_is_rejected(self) -> None:
        with patch("ponto.security.get_settings", return_value=_settings(jwt_secret="other-secret")):
            token, _ = create_access_token(sub="admin", role=ROLE_ADMIN)
        with patch("ponto.security.get_settings", return_value=_settings()):
            with self.assertRaises(ApiError) as ctx:
                decode_token(token, expected_role=ROLE_ADMIN)
        self.assertEqual(ctx.exception.status_code, 401)
        self.assertEqual(ctx.exception.code, "INVALID_TOKEN")


class LoginThrottleTests(unittest.TestCase):
    ip = "203.0.113.10"

    def tearDown(self) -> None:
        _FAILED_ATTEMPTS.pop(self.ip, None)

    def test_blocks_after_ten_failures(self) -> None:
        for _ in range(10):
            ensure_login_attempt_allowed(self.ip)
            register_login_failure(self.ip)

        with self.assertRaises(ApiError) as ctx:
            ensure_login_attempt_allowed(self.ip)
        self.assertEqual(ctx.exception.status_code, 429)

    def test_success_clears_failures(self) -> None:
        for _ in range(10):
            register_login_failure(self.ip)
        register_login_success(self.ip)
        ensure_login_attempt_allowed(self.ip)


if __name__ == "__main__":
    unittest.main()
