"""Attendance records and the attendance-rate aggregate."""

from datetime import date
from typing import List

from sqlalchemy import func
from sqlmodel import Session, select

from lms_grading.errors import ValidationError
from lms_grading.models import SESSION_TYPES, AttendanceRecord
from lms_grading.utils import utc_now


def attendance_rate(session: Session, course_id: int, student_id: str) -> float:
    """Attended share of all session time for a student in a course, in [0, 1].

    No records (or zero total duration) yields 0.0.
    """
    attended, required = session.exec(
        select(
            func.coalesce(func.sum(AttendanceRecord.duration_seconds), 0),
            func.coalesce(func.sum(AttendanceRecord.total_duration_seconds), 0),
        ).where(
            (AttendanceRecord.course_id == course_id)
            & (AttendanceRecord.student_id == student_id)
        )
    ).one()
    if not required:
        return 0.0
    return min(float(attended) / float(required), 1.0)


def validate_attendance(
    session_type: str,
    session_id: str,
    duration_seconds: int,
    total_duration_seconds: int,
) -> None:
    if not session_id:
        raise ValidationError("sessionId is required")
    if session_type not in SESSION_TYPES:
        raise ValidationError(
            f"Invalid session type '{session_type}'. Must be one of {', '.join(SESSION_TYPES)}"
        )
    if duration_seconds < 0 or total_duration_seconds < 0:
        raise ValidationError("Durations cannot be negative")
    if duration_seconds > total_duration_seconds:
        raise ValidationError("durationSeconds cannot exceed totalDurationSeconds")


def upsert_attendance(
    session: Session,
    student_id: str,
    course_id: int,
    session_type: str,
    session_id: str,
    duration_seconds: int,
    total_duration_seconds: int,
    attendance_date: date,
) -> AttendanceRecord:
    """Insert or overwrite the record for (student, course, session).

    The stored duration is the lesser of the reported and the total duration
    and replaces the previous value, so re-sending the same report is a no-op.
    """
    validate_attendance(session_type, session_id, duration_seconds, total_duration_seconds)
    duration = min(duration_seconds, total_duration_seconds)

    record = session.exec(
        select(AttendanceRecord).where(
            (AttendanceRecord.student_id == student_id)
            & (AttendanceRecord.course_id == course_id)
            & (AttendanceRecord.session_id == session_id)
        )
    ).first()

    if record:
        if record.duration_seconds != duration:
            record.duration_seconds = duration
            record.updated_at = utc_now()
            session.add(record)
    else:
        record = AttendanceRecord(
            student_id=student_id,
            course_id=course_id,
            session_id=session_id,
            session_type=session_type,
            duration_seconds=duration,
            total_duration_seconds=total_duration_seconds,
            attendance_date=attendance_date,
        )
        session.add(record)
    session.flush()
    return record


def list_attendance(session: Session, course_id: int, student_id: str) -> List[dict]:
    records = session.exec(
        select(AttendanceRecord)
        .where(
            (AttendanceRecord.course_id == course_id)
            & (AttendanceRecord.student_id == student_id)
        )
        .order_by(AttendanceRecord.attendance_date, AttendanceRecord.id)
    ).all()
    return [
        {
            "session_id": r.session_id,
            "session_type": r.session_type,
            "date": r.attendance_date.isoformat(),
            "duration_seconds": r.duration_seconds,
            "total_duration_seconds": r.total_duration_seconds,
            "attendance_rate": (
                round(r.duration_seconds / r.total_duration_seconds * 100, 2)
                if r.total_duration_seconds > 0
                else 0
            ),
        }
        for r in records
    ]
