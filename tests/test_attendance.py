from datetime import date

import pytest
from sqlmodel import select

from lms_grading.errors import NotFound, ValidationError
from lms_grading.models import AttendanceRecord
from lms_grading.services.attendance import attendance_rate, list_attendance
from lms_grading.services.gradebook import record_attendance


def _attend(db, settings, course_id, duration, total, session_id="vod-1", student_id="student-1",
            session_type="VOD"):
    with db.transaction() as session:
        return record_attendance(
            session,
            student_id=student_id,
            course_id=course_id,
            session_type=session_type,
            session_id=session_id,
            duration_seconds=duration,
            total_duration_seconds=total,
            attendance_date=date(2024, 3, 4),
            settings=settings,
        )


def test_no_records_means_zero_rate(db, course_setup):
    with db.session() as session:
        assert attendance_rate(session, course_setup["course_id"], "student-1") == 0.0


def test_repeated_report_is_idempotent(db, settings, course_setup):
    course_id = course_setup["course_id"]
    _attend(db, settings, course_id, 300, 600)
    _attend(db, settings, course_id, 300, 600)

    with db.session() as session:
        records = session.exec(select(AttendanceRecord)).all()
        rate = attendance_rate(session, course_id, "student-1")

    assert len(records) == 1
    assert records[0].duration_seconds == 300
    assert rate == 0.5


def test_report_overwrites_previous_duration(db, settings, course_setup):
    course_id = course_setup["course_id"]
    _attend(db, settings, course_id, 300, 600)
    _attend(db, settings, course_id, 450, 600)

    with db.session() as session:
        (record,) = session.exec(select(AttendanceRecord)).all()
    assert record.duration_seconds == 450


def test_rate_sums_over_sessions(db, settings, course_setup):
    course_id = course_setup["course_id"]
    _attend(db, settings, course_id, 300, 600, session_id="vod-1")
    _attend(db, settings, course_id, 600, 600, session_id="zoom-1", session_type="ZOOM")

    with db.session() as session:
        rate = attendance_rate(session, course_id, "student-1")
        sessions = list_attendance(session, course_id, "student-1")

    assert rate == 0.75
    assert [s["attendance_rate"] for s in sessions] == [50.0, 100.0]


def test_attendance_updates_final_grade(db, settings, course_setup):
    result = _attend(db, settings, course_setup["course_id"], 600, 600)
    # default weights: attendance is 20% of the grade
    assert result["final_grade"].attendance_score == 100.0
    assert result["final_grade"].final_score == 20.0


def test_other_students_are_not_affected(db, settings, course_setup):
    course_id = course_setup["course_id"]
    _attend(db, settings, course_id, 600, 600)
    with db.session() as session:
        assert attendance_rate(session, course_id, "student-2") == 0.0


@pytest.mark.parametrize(
    "duration,total,session_type,session_id",
    [
        (700, 600, "VOD", "vod-1"),
        (-1, 600, "VOD", "vod-1"),
        (100, 600, "LIVE", "vod-1"),
        (100, 600, "VOD", ""),
    ],
)
def test_invalid_reports_rejected(db, settings, course_setup, duration, total, session_type, session_id):
    with pytest.raises(ValidationError):
        _attend(
            db,
            settings,
            course_setup["course_id"],
            duration,
            total,
            session_id=session_id,
            session_type=session_type,
        )
    with db.session() as session:
        assert session.exec(select(AttendanceRecord)).all() == []


def test_unenrolled_student_rejected(db, settings, course_setup):
    with pytest.raises(NotFound):
        _attend(db, settings, course_setup["course_id"], 100, 600, student_id="stranger")
