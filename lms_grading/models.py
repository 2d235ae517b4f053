"""SQLModel models for the LMS grading backend."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from lms_grading.utils import utc_now

ITEM_TYPES = ("ASSIGNMENT", "EXAM")
ENROLLMENT_STATUSES = ("ACTIVE", "COMPLETED", "DROPPED")
SESSION_TYPES = ("VOD", "ZOOM")


class Student(SQLModel, table=True):
    """Local mirror of an identity-provider user; ``id`` is the token subject."""

    id: str = Field(primary_key=True, max_length=64)
    name: str
    email: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class Course(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("code", name="uq_course_code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    code: str
    title: str
    description: Optional[str] = None
    # Maximum number of items per type; None means unlimited
    assignment_count: Optional[int] = None
    exam_count: Optional[int] = None
    created_at: datetime = Field(default_factory=utc_now)


class Enrollment(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint("course_id", "student_id", name="uq_course_student"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    course_id: int = Field(foreign_key="course.id", index=True)
    student_id: str = Field(foreign_key="student.id", index=True)
    status: str = Field(default="ACTIVE")  # ACTIVE | COMPLETED | DROPPED
    # Mirrors FinalGrade.final_score, kept in sync by update_final_grades
    final_grade: Optional[float] = None
    enrolled_at: datetime = Field(default_factory=utc_now)


class GradeItem(SQLModel, table=True):
    """An assignment or exam belonging to a course."""

    id: Optional[int] = Field(default=None, primary_key=True)
    course_id: int = Field(foreign_key="course.id", index=True)
    item_type: str  # ASSIGNMENT | EXAM
    name: str
    item_order: int = Field(default=1)
    due_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class StudentGrade(SQLModel, table=True):
    """One score per (enrollment, item)."""

    __table_args__ = (
        UniqueConstraint("enrollment_id", "item_id", name="uq_enrollment_item"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    enrollment_id: int = Field(foreign_key="enrollment.id", index=True)
    item_id: int = Field(foreign_key="gradeitem.id", index=True)
    score: float = Field(default=0)
    is_completed: bool = Field(default=False)
    submission_date: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utc_now)


class GradeHistory(SQLModel, table=True):
    """Append-only audit entry for a score change.

    The ids are plain indexed columns rather than foreign keys so the trail
    outlives a deleted grade item.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    grade_id: int = Field(index=True)
    item_id: Optional[int] = Field(default=None, index=True)
    enrollment_id: Optional[int] = Field(default=None, index=True)
    previous_score: float
    new_score: float
    modified_by: str = Field(index=True)
    reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now, index=True)


class AttendanceRecord(SQLModel, table=True):
    __table_args__ = (
        UniqueConstraint(
            "student_id", "course_id", "session_id", name="uq_attendance_session"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    student_id: str = Field(foreign_key="student.id", index=True)
    course_id: int = Field(foreign_key="course.id", index=True)
    session_id: str
    session_type: str  # VOD | ZOOM
    duration_seconds: int = Field(default=0)
    total_duration_seconds: int = Field(default=0)
    attendance_date: date
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class CourseGradeRules(SQLModel, table=True):
    __table_args__ = (UniqueConstraint("course_id", name="uq_rules_course"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    course_id: int = Field(foreign_key="course.id")
    attendance_weight: float
    assignment_weight: float
    exam_weight: float
    min_attendance_rate: float = Field(default=0)
    updated_at: datetime = Field(default_factory=utc_now)


class FinalGrade(SQLModel, table=True):
    """Materialized result of the final-grade computation."""

    __table_args__ = (
        UniqueConstraint("course_id", "student_id", name="uq_final_grade"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    course_id: int = Field(foreign_key="course.id", index=True)
    student_id: str = Field(foreign_key="student.id", index=True)
    attendance_score: float = Field(default=0)
    assignment_score: float = Field(default=0)
    exam_score: float = Field(default=0)
    weighted_score: float = Field(default=0)
    final_score: float = Field(default=0)
    letter_grade: str = Field(default="F")
    attendance_failed: bool = Field(default=False)
    computed_at: datetime = Field(default_factory=utc_now)
