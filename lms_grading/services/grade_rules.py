"""Per-course grading weights and minimum attendance threshold."""

import math
from dataclasses import dataclass
from typing import Optional

from sqlmodel import Session, select

from lms_grading.app_logger import get_logger
from lms_grading.config import Settings
from lms_grading.errors import ConfigurationMissing, NotFound, ValidationError
from lms_grading.models import Course, CourseGradeRules
from lms_grading.utils import utc_now

logger = get_logger("grade_rules")


@dataclass(frozen=True)
class GradeWeights:
    attendance_weight: float
    assignment_weight: float
    exam_weight: float
    min_attendance_rate: float
    is_default: bool = False

    def as_dict(self) -> dict:
        return {
            "attendance_weight": self.attendance_weight,
            "assignment_weight": self.assignment_weight,
            "exam_weight": self.exam_weight,
            "min_attendance_rate": self.min_attendance_rate,
            "is_default": self.is_default,
        }


def validate_weights(
    attendance_weight: float,
    assignment_weight: float,
    exam_weight: float,
    min_attendance_rate: float,
) -> None:
    """Raise ValidationError unless the weights are usable.

    Weights must be non-negative and sum to exactly 100; the minimum
    attendance rate is a percentage.
    """
    values = {
        "attendance_weight": attendance_weight,
        "assignment_weight": assignment_weight,
        "exam_weight": exam_weight,
        "min_attendance_weight": min_attendance_rate,
    }
    missing = [name for name, value in values.items() if value is None]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    if attendance_weight < 0 or assignment_weight < 0 or exam_weight < 0:
        raise ValidationError("Weights cannot be negative")

    if min_attendance_rate < 0 or min_attendance_rate > 100:
        raise ValidationError("Minimum attendance rate must be between 0 and 100")

    total = attendance_weight + assignment_weight + exam_weight
    if not math.isclose(total, 100, abs_tol=1e-9):
        raise ValidationError(f"Weights must sum to 100 (got {total:g})")


def get_grade_rules(session: Session, course_id: int) -> Optional[CourseGradeRules]:
    return session.exec(
        select(CourseGradeRules).where(CourseGradeRules.course_id == course_id)
    ).first()


def set_grade_rules(
    session: Session,
    course_id: int,
    attendance_weight: float,
    assignment_weight: float,
    exam_weight: float,
    min_attendance_rate: float,
) -> CourseGradeRules:
    """Create or replace the grading rules of a course.

    Validation runs before anything is written, so rejected weights leave the
    existing rules untouched.
    """
    validate_weights(attendance_weight, assignment_weight, exam_weight, min_attendance_rate)

    if not session.get(Course, course_id):
        raise NotFound(f"Course {course_id} not found")

    rules = get_grade_rules(session, course_id)
    if rules is None:
        rules = CourseGradeRules(course_id=course_id)
    rules.attendance_weight = attendance_weight
    rules.assignment_weight = assignment_weight
    rules.exam_weight = exam_weight
    rules.min_attendance_rate = min_attendance_rate
    rules.updated_at = utc_now()
    session.add(rules)
    session.flush()

    logger.info(
        "Grade rules for course %s set to %g/%g/%g (min attendance %g)",
        course_id,
        attendance_weight,
        assignment_weight,
        exam_weight,
        min_attendance_rate,
    )
    return rules


def resolve_grade_rules(session: Session, course_id: int, settings: Settings) -> GradeWeights:
    """Return the weights to grade a course with.

    Courses without stored rules fall back to the configured default
    weighting, unless REQUIRE_GRADE_RULES is set.
    """
    rules = get_grade_rules(session, course_id)
    if rules is not None:
        return GradeWeights(
            attendance_weight=rules.attendance_weight,
            assignment_weight=rules.assignment_weight,
            exam_weight=rules.exam_weight,
            min_attendance_rate=rules.min_attendance_rate,
        )

    if settings.REQUIRE_GRADE_RULES:
        raise ConfigurationMissing(f"Grade rules are not configured for course {course_id}")

    return GradeWeights(
        attendance_weight=settings.DEFAULT_ATTENDANCE_WEIGHT,
        assignment_weight=settings.DEFAULT_ASSIGNMENT_WEIGHT,
        exam_weight=settings.DEFAULT_EXAM_WEIGHT,
        min_attendance_rate=settings.DEFAULT_MIN_ATTENDANCE_RATE,
        is_default=True,
    )
