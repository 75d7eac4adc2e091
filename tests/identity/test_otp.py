"""Tests for email/phone verification codes."""

from datetime import timedelta

import pytest

from gigboard.identity.otp import (
    IncorrectOTPError,
    InMemoryOTPStorage,
    OTPAttemptsExceededError,
    OTPExpiredError,
    OTPNotFoundError,
    OTPPurpose,
    OTPRecord,
    OTPResendLimitError,
    OTPService,
    generate_numeric_code,
)


@pytest.fixture
def storage():
    return InMemoryOTPStorage()


@pytest.fixture
def otp(storage):
    return OTPService(storage)


def _wrong(code: str) -> str:
    return "111111" if code != "111111" else "222222"


class TestCodeGeneration:
    def test_length_and_no_leading_zero(self):
        for _ in range(200):
            code = generate_numeric_code(6)
            assert len(code) == 6
            assert code.isdigit()
            assert code[0] != "0"

    def test_digits_must_be_positive(self):
        with pytest.raises(ValueError):
            generate_numeric_code(0)


class TestVerify:
    def test_correct_code_is_consumed(self, otp, storage):
        code = otp.issue("User@Example.com ", OTPPurpose.REGISTRATION)
        otp.verify("user@example.com", OTPPurpose.REGISTRATION, code)

        assert storage.get("user@example.com", "registration") is None
        with pytest.raises(OTPNotFoundError):
            otp.verify("user@example.com", OTPPurpose.REGISTRATION, code)

    def test_purposes_are_separate(self, otp):
        code = otp.issue("a@example.com", OTPPurpose.REGISTRATION)
        with pytest.raises(OTPNotFoundError):
            otp.verify("a@example.com", OTPPurpose.EMAIL_UPDATE, code)

    def test_wrong_code_reports_remaining_attempts(self, otp):
        code = otp.issue("a@example.com", "registration")

        with pytest.raises(IncorrectOTPError) as exc_info:
            otp.verify("a@example.com", "registration", _wrong(code))

        body = exc_info.value.to_dict()
        assert body["code"] == "INCORRECT_OTP"
        assert body["remaining_attempts"] == 2
        assert body["can_retry"] is True
        assert "2 attempts remaining" in body["detail"]

    def test_three_wrong_guesses_burn_the_code(self, otp, storage):
        code = otp.issue("a@example.com", "registration")
        for remaining in (2, 1, 0):
            with pytest.raises(IncorrectOTPError) as exc_info:
                otp.verify("a@example.com", "registration", _wrong(code))
            assert exc_info.value.details["remaining_attempts"] == remaining
        assert exc_info.value.details["can_retry"] is False

        with pytest.raises(OTPAttemptsExceededError):
            otp.verify("a@example.com", "registration", code)
        assert storage.get("a@example.com", "registration") is None

    def test_expired_code(self, storage):
        otp = OTPService(storage, ttl=timedelta(0))
        code = otp.issue("a@example.com", "registration")
        with pytest.raises(OTPExpiredError):
            otp.verify("a@example.com", "registration", code)

    def test_whitespace_around_code_is_ignored(self, otp):
        code = otp.issue("a@example.com", "registration")
        otp.verify("a@example.com", "registration", f" {code} ")


class TestIssue:
    def test_reissue_replaces_code_and_counts_resend(self, otp, storage):
        otp.issue("a@example.com", "registration")
        second = otp.issue("a@example.com", "registration")

        record = storage.get("a@example.com", "registration")
        assert record.code == second
        assert record.resend_count == 1
        assert record.attempts == 0

    def test_resend_limit(self, otp):
        for _ in range(6):
            otp.issue("a@example.com", "registration")
        with pytest.raises(OTPResendLimitError) as exc_info:
            otp.issue("a@example.com", "registration")
        assert exc_info.value.status_code == 429

    def test_expired_code_resets_resend_count(self, storage):
        otp = OTPService(storage, ttl=timedelta(0), max_resends=0)
        otp.issue("a@example.com", "registration")
        otp.issue("a@example.com", "registration")
        assert storage.get("a@example.com", "registration").resend_count == 0

    def test_unknown_purpose(self, otp):
        with pytest.raises(ValueError):
            otp.issue("a@example.com", "password-reset")


class TestRecord:
    def test_dict_round_trip(self, otp, storage):
        otp.issue("a@example.com", "phone-update")
        record = storage.get("a@example.com", "phone-update")
        assert OTPRecord.from_dict(record.to_dict()) == record
