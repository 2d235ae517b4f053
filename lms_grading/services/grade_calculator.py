"""Final grade computation.

Combines the attendance rate, the mean assignment score and the mean exam
score of a student by the course's weights into one final score and letter
grade, applying the minimum-attendance gate, and materializes the result in
the ``FinalGrade`` table.
"""

from dataclasses import asdict, dataclass
from typing import List, Optional

from sqlmodel import Session, select

from lms_grading.app_logger import get_logger
from lms_grading.config import Settings
from lms_grading.errors import NotFound
from lms_grading.models import Course, Enrollment, FinalGrade, Student
from lms_grading.services.attendance import attendance_rate, list_attendance
from lms_grading.services.grade_rules import GradeWeights, get_grade_rules, resolve_grade_rules
from lms_grading.services.scores import item_scores_for_enrollment, score_means
from lms_grading.utils import round_score, utc_now

logger = get_logger("grade_calculator")

ATTENDANCE_FAIL_POLICIES = ("zero", "weighted")

# (lower bound, letter), checked from the top
LETTER_GRADES = [(90, "A"), (80, "B"), (70, "C"), (60, "D")]


@dataclass(frozen=True)
class GradeComputation:
    course_id: int
    student_id: str
    attendance_score: float
    assignment_score: float
    exam_score: float
    weighted_score: float
    final_score: float
    letter_grade: str
    attendance_failed: bool

    def as_dict(self) -> dict:
        return asdict(self)


def letter_grade(score: float) -> str:
    for lower_bound, letter in LETTER_GRADES:
        if score >= lower_bound:
            return letter
    return "F"


def combine_scores(
    attendance_score: float,
    assignment_score: float,
    exam_score: float,
    weights: GradeWeights,
    fail_policy: str = "zero",
) -> tuple:
    """Apply the weights and the attendance gate.

    Returns ``(weighted_score, final_score, letter, attendance_failed)``.
    Below the minimum attendance rate the letter is always F; under the
    ``zero`` policy the final score is 0, under ``weighted`` it keeps the
    weighted value.
    """
    if fail_policy not in ATTENDANCE_FAIL_POLICIES:
        raise ValueError(f"Unknown attendance fail policy: {fail_policy}")

    weighted = round_score(
        attendance_score * weights.attendance_weight / 100
        + assignment_score * weights.assignment_weight / 100
        + exam_score * weights.exam_weight / 100
    )

    if attendance_score < weights.min_attendance_rate:
        final = 0.0 if fail_policy == "zero" else weighted
        return weighted, final, "F", True

    return weighted, weighted, letter_grade(weighted), False


def _get_enrollment(session: Session, course_id: int, student_id: str) -> Enrollment:
    if not session.get(Course, course_id):
        raise NotFound(f"Course {course_id} not found")
    enrollment = session.exec(
        select(Enrollment).where(
            (Enrollment.course_id == course_id) & (Enrollment.student_id == student_id)
        )
    ).first()
    if not enrollment:
        raise NotFound(f"Student {student_id} is not enrolled in course {course_id}")
    return enrollment


def compute_final_grade(
    session: Session, course_id: int, student_id: str, settings: Settings
) -> GradeComputation:
    """Compute a student's final grade without writing anything."""
    enrollment = _get_enrollment(session, course_id, student_id)
    weights = resolve_grade_rules(session, course_id, settings)

    attendance_score = round_score(attendance_rate(session, course_id, student_id) * 100)
    assignment_mean, exam_mean = score_means(session, course_id, enrollment.id)
    assignment_score = round_score(assignment_mean)
    exam_score = round_score(exam_mean)

    weighted, final, letter, failed = combine_scores(
        attendance_score,
        assignment_score,
        exam_score,
        weights,
        settings.ATTENDANCE_FAIL_POLICY,
    )
    return GradeComputation(
        course_id=course_id,
        student_id=student_id,
        attendance_score=attendance_score,
        assignment_score=assignment_score,
        exam_score=exam_score,
        weighted_score=weighted,
        final_score=final,
        letter_grade=letter,
        attendance_failed=failed,
    )


def update_final_grades(
    session: Session, course_id: int, student_id: str, settings: Settings
) -> FinalGrade:
    """Recompute and upsert the FinalGrade row of a student in a course.

    ``computed_at`` only moves when a stored value changes, so repeating the
    call with unchanged inputs leaves the row exactly as it was.
    """
    result = compute_final_grade(session, course_id, student_id, settings)

    final_grade = get_final_grade(session, course_id, student_id)
    if final_grade is None:
        final_grade = FinalGrade(course_id=course_id, student_id=student_id)

    changed = final_grade.id is None
    for field in (
        "attendance_score",
        "assignment_score",
        "exam_score",
        "weighted_score",
        "final_score",
        "letter_grade",
        "attendance_failed",
    ):
        value = getattr(result, field)
        if getattr(final_grade, field) != value:
            setattr(final_grade, field, value)
            changed = True

    if changed:
        final_grade.computed_at = utc_now()
        session.add(final_grade)

        enrollment = _get_enrollment(session, course_id, student_id)
        enrollment.final_grade = result.final_score
        session.add(enrollment)
        session.flush()
        logger.debug(
            "Final grade for %s in course %s: %s (%s)",
            student_id,
            course_id,
            result.final_score,
            result.letter_grade,
        )
    return final_grade


def _rules_pending(session: Session, course_id: int, settings: Settings) -> bool:
    if settings.REQUIRE_GRADE_RULES and get_grade_rules(session, course_id) is None:
        logger.info("Course %s has no grade rules yet; final grades not computed", course_id)
        return True
    return False


def recompute_student_grade(
    session: Session, course_id: int, student_id: str, settings: Settings
) -> Optional[FinalGrade]:
    """Like update_final_grades, but returns None while required rules are missing."""
    if _rules_pending(session, course_id, settings):
        return None
    return update_final_grades(session, course_id, student_id, settings)


def recompute_course_grades(
    session: Session, course_id: int, settings: Settings
) -> List[FinalGrade]:
    """Recompute every ACTIVE enrollment of a course.

    When rules are required but not configured yet there is nothing to
    compute; setting the rules recomputes the whole course.
    """
    if _rules_pending(session, course_id, settings):
        return []

    enrollments = session.exec(
        select(Enrollment)
        .where((Enrollment.course_id == course_id) & (Enrollment.status == "ACTIVE"))
        .order_by(Enrollment.id)
    ).all()
    return [
        update_final_grades(session, course_id, enrollment.student_id, settings)
        for enrollment in enrollments
    ]


def get_final_grade(session: Session, course_id: int, student_id: str) -> Optional[FinalGrade]:
    return session.exec(
        select(FinalGrade).where(
            (FinalGrade.course_id == course_id) & (FinalGrade.student_id == student_id)
        )
    ).first()


def get_student_grades(
    session: Session, course_id: int, student_id: str, settings: Settings
) -> dict:
    """Full grade breakdown of one student in one course."""
    enrollment = _get_enrollment(session, course_id, student_id)
    course = session.get(Course, course_id)
    student = session.get(Student, student_id)
    weights = resolve_grade_rules(session, course_id, settings)
    computed = compute_final_grade(session, course_id, student_id, settings)

    assignments, exams = [], []
    for item, grade in item_scores_for_enrollment(session, course_id, enrollment.id):
        entry = {
            "id": item.id,
            "grade_id": grade.id if grade else None,
            "title": item.name,
            "order": item.item_order,
            "due_date": item.due_date.isoformat() if item.due_date else None,
            "score": grade.score if grade else 0,
            "is_completed": grade.is_completed if grade else False,
        }
        (assignments if item.item_type == "ASSIGNMENT" else exams).append(entry)

    return {
        "course_id": course.id,
        "course_title": course.title,
        "student_id": student_id,
        "student_name": student.name if student else None,
        "enrollment_id": enrollment.id,
        "enrollment_status": enrollment.status,
        "weights": weights.as_dict(),
        "attendance": {
            "rate": computed.attendance_score,
            "sessions": list_attendance(session, course_id, student_id),
        },
        "assignments": assignments,
        "exams": exams,
        "grades": computed.as_dict(),
    }
