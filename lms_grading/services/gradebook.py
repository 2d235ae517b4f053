"""Score and attendance mutations together with their final-grade recompute.

Both functions expect to run inside ``Database.transaction()`` so that the
mutation, its audit rows and the recomputed final grades commit together.
"""

from datetime import date
from typing import List, Optional

from sqlmodel import Session, select

from lms_grading.config import Settings
from lms_grading.errors import NotFound
from lms_grading.models import Enrollment, FinalGrade, Student
from lms_grading.services.attendance import upsert_attendance, validate_attendance
from lms_grading.services.grade_calculator import update_final_grades
from lms_grading.services.scores import apply_score_changes


def update_scores(
    session: Session,
    item_id: int,
    scores: List[dict],
    modified_by: str,
    settings: Settings,
    reason: Optional[str] = None,
) -> dict:
    item, changed = apply_score_changes(session, item_id, scores, modified_by, reason)
    final_grades: List[FinalGrade] = [
        update_final_grades(session, item.course_id, enrollment.student_id, settings)
        for enrollment in changed
    ]
    return {
        "course_id": item.course_id,
        "item_id": item.id,
        "updated_count": len(changed),
        "final_grades": final_grades,
    }


def record_attendance(
    session: Session,
    student_id: str,
    course_id: int,
    session_type: str,
    session_id: str,
    duration_seconds: int,
    total_duration_seconds: int,
    attendance_date: date,
    settings: Settings,
) -> dict:
    validate_attendance(session_type, session_id, duration_seconds, total_duration_seconds)

    if not session.get(Student, student_id):
        raise NotFound(f"Student {student_id} not found")
    enrollment = session.exec(
        select(Enrollment).where(
            (Enrollment.course_id == course_id) & (Enrollment.student_id == student_id)
        )
    ).first()
    if not enrollment:
        raise NotFound(f"Student {student_id} is not enrolled in course {course_id}")

    record = upsert_attendance(
        session,
        student_id=student_id,
        course_id=course_id,
        session_type=session_type,
        session_id=session_id,
        duration_seconds=duration_seconds,
        total_duration_seconds=total_duration_seconds,
        attendance_date=attendance_date,
    )
    final_grade = update_final_grades(session, course_id, student_id, settings)
    return {"record": record, "final_grade": final_grade}
