import pytest
from pydantic import ValidationError

from lms_grading.config import Settings


def test_fail_policy_accepts_known_values():
    assert Settings(ATTENDANCE_FAIL_POLICY="weighted").ATTENDANCE_FAIL_POLICY == "weighted"
    assert Settings().ATTENDANCE_FAIL_POLICY in ("zero", "weighted")


def test_fail_policy_typo_rejected_at_load():
    with pytest.raises(ValidationError):
        Settings(ATTENDANCE_FAIL_POLICY="zer0")


def test_fail_policy_read_from_environment(monkeypatch):
    monkeypatch.setenv("ATTENDANCE_FAIL_POLICY", "curve")
    with pytest.raises(ValidationError):
        Settings()
