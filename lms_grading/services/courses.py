"""Course, student and enrollment bookkeeping."""

import re
from typing import List, Optional

from sqlmodel import Session, select

from lms_grading.config import Settings
from lms_grading.errors import NotFound, ValidationError
from lms_grading.models import (
    ENROLLMENT_STATUSES,
    Course,
    Enrollment,
    GradeItem,
    Student,
    StudentGrade,
)
from lms_grading.services.grade_calculator import recompute_student_grade
from lms_grading.utils import sanitize_text

COURSE_CODE_MAX_LENGTH = 20
COURSE_TITLE_MAX_LENGTH = 120
COURSE_CODE_PATTERN = re.compile(r"^[A-Z0-9\-]+$")


def create_course(
    session: Session,
    code: str,
    title: str,
    description: Optional[str] = None,
    assignment_count: Optional[int] = None,
    exam_count: Optional[int] = None,
) -> Course:
    code = (code or "").strip().upper()
    if not code or len(code) > COURSE_CODE_MAX_LENGTH or not COURSE_CODE_PATTERN.match(code):
        raise ValidationError(
            f"Course code must be 1-{COURSE_CODE_MAX_LENGTH} characters of A-Z, 0-9 or '-'"
        )
    title = sanitize_text(title)
    if not title or len(title) > COURSE_TITLE_MAX_LENGTH:
        raise ValidationError(f"Course title must be 1-{COURSE_TITLE_MAX_LENGTH} characters")
    for label, value in (("assignment_count", assignment_count), ("exam_count", exam_count)):
        if value is not None and value < 0:
            raise ValidationError(f"{label} cannot be negative")

    if session.exec(select(Course).where(Course.code == code)).first():
        raise ValidationError(f"Course code {code} already exists")

    course = Course(
        code=code,
        title=title,
        description=sanitize_text(description),
        assignment_count=assignment_count,
        exam_count=exam_count,
    )
    session.add(course)
    session.flush()
    return course


def get_course(session: Session, course_id: int) -> Course:
    course = session.get(Course, course_id)
    if not course:
        raise NotFound(f"Course {course_id} not found")
    return course


def list_courses(session: Session) -> List[Course]:
    return session.exec(select(Course).order_by(Course.code)).all()


def upsert_student(session: Session, student_id: str, name: str, email: Optional[str] = None) -> Student:
    """Create or refresh the local copy of an identity-provider user."""
    name = sanitize_text(name)
    if not student_id or not name:
        raise ValidationError("Student id and name are required")

    student = session.get(Student, student_id)
    if student is None:
        student = Student(id=student_id, name=name, email=email)
    else:
        student.name = name
        student.email = email
    session.add(student)
    session.flush()
    return student


def enroll_student(session: Session, course_id: int, student_id: str) -> Enrollment:
    """Enroll a student and give them a zero score on every existing item."""
    get_course(session, course_id)
    if not session.get(Student, student_id):
        raise NotFound(f"Student {student_id} not found")

    existing = session.exec(
        select(Enrollment).where(
            (Enrollment.course_id == course_id) & (Enrollment.student_id == student_id)
        )
    ).first()
    if existing:
        raise ValidationError(f"Student {student_id} is already enrolled in course {course_id}")

    enrollment = Enrollment(course_id=course_id, student_id=student_id, status="ACTIVE")
    session.add(enrollment)
    session.flush()

    _add_missing_placeholders(session, enrollment)
    return enrollment


def _add_missing_placeholders(session: Session, enrollment: Enrollment) -> int:
    """Give the enrollment a zero score on every course item it has no row for."""
    items = session.exec(select(GradeItem).where(GradeItem.course_id == enrollment.course_id)).all()
    existing = set(
        session.exec(
            select(StudentGrade.item_id).where(StudentGrade.enrollment_id == enrollment.id)
        ).all()
    )
    missing = [item for item in items if item.id not in existing]
    for item in missing:
        session.add(StudentGrade(enrollment_id=enrollment.id, item_id=item.id, score=0))
    session.flush()
    return len(missing)


def set_enrollment_status(
    session: Session, enrollment_id: int, status: str, settings: Settings
) -> Enrollment:
    """Change an enrollment's status.

    Items created while the enrollment was inactive got no placeholder, so
    returning to ACTIVE fills those in and refreshes the final grade.
    """
    if status not in ENROLLMENT_STATUSES:
        raise ValidationError(f"Status must be one of {', '.join(ENROLLMENT_STATUSES)}")
    enrollment = session.get(Enrollment, enrollment_id)
    if not enrollment:
        raise NotFound(f"Enrollment {enrollment_id} not found")
    reactivated = enrollment.status != "ACTIVE" and status == "ACTIVE"
    enrollment.status = status
    session.add(enrollment)
    session.flush()

    if reactivated:
        _add_missing_placeholders(session, enrollment)
        recompute_student_grade(session, enrollment.course_id, enrollment.student_id, settings)
    return enrollment
