"""Per-item scores: the assignment/exam mean aggregate and score entry."""

from typing import Dict, List, Optional, Tuple

from sqlmodel import Session, select

from lms_grading.errors import NotFound, ValidationError
from lms_grading.models import Enrollment, GradeItem, StudentGrade
from lms_grading.services.grade_history import record_grade_history
from lms_grading.utils import utc_now, validate_score


def item_scores_for_enrollment(
    session: Session, course_id: int, enrollment_id: Optional[int]
) -> List[Tuple[GradeItem, Optional[StudentGrade]]]:
    """All items of a course paired with the enrollment's grade row (or None)."""
    items = session.exec(
        select(GradeItem)
        .where(GradeItem.course_id == course_id)
        .order_by(GradeItem.item_type, GradeItem.item_order, GradeItem.id)
    ).all()
    if enrollment_id is None or not items:
        return [(item, None) for item in items]

    grades = session.exec(
        select(StudentGrade).where(
            (StudentGrade.enrollment_id == enrollment_id)
            & (StudentGrade.item_id.in_([item.id for item in items]))
        )
    ).all()
    by_item = {g.item_id: g for g in grades}
    return [(item, by_item.get(item.id)) for item in items]


def score_means(session: Session, course_id: int, enrollment_id: int) -> Tuple[float, float]:
    """Mean assignment score and mean exam score for an enrollment.

    Every item of the course counts; an item without a recorded score counts
    as 0. A type with no items has a mean of 0.0.
    """
    totals: Dict[str, List[float]] = {"ASSIGNMENT": [], "EXAM": []}
    for item, grade in item_scores_for_enrollment(session, course_id, enrollment_id):
        if item.item_type in totals:
            totals[item.item_type].append(grade.score if grade and grade.score is not None else 0.0)

    def _mean(values: List[float]) -> float:
        return sum(values) / len(values) if values else 0.0

    return _mean(totals["ASSIGNMENT"]), _mean(totals["EXAM"])


def apply_score_changes(
    session: Session,
    item_id: int,
    scores: List[dict],
    modified_by: str,
    reason: Optional[str] = None,
) -> Tuple[GradeItem, List[Enrollment]]:
    """Write new scores for one grade item and audit every change.

    ``scores`` is a list of ``{"enrollment_id": ..., "score": ...}``. All
    input is validated before the first row is touched. Returns the item and
    the enrollments whose score actually changed.
    """
    if not scores:
        raise ValidationError("scores must contain at least one entry")

    validated = []
    for entry in scores:
        enrollment_id = entry.get("enrollment_id")
        if enrollment_id is None:
            raise ValidationError("enrollmentId is required for every score")
        validated.append(
            (enrollment_id, validate_score(entry.get("score"), f"Score for enrollment {enrollment_id}"))
        )

    item = session.get(GradeItem, item_id)
    if not item:
        raise NotFound(f"Grade item {item_id} not found")

    grades = {}
    for enrollment_id, _ in validated:
        grade = session.exec(
            select(StudentGrade).where(
                (StudentGrade.item_id == item_id) & (StudentGrade.enrollment_id == enrollment_id)
            )
        ).first()
        if not grade:
            raise NotFound(f"No grade record for enrollment {enrollment_id} on item {item_id}")
        grades[enrollment_id] = grade

    changed: Dict[int, Enrollment] = {}
    now = utc_now()
    for enrollment_id, score in validated:
        grade = grades[enrollment_id]
        previous = grade.score
        if previous is not None and float(previous) == score and grade.is_completed:
            continue

        grade.score = score
        grade.is_completed = True
        grade.submission_date = grade.submission_date or now
        grade.updated_at = now
        session.add(grade)
        record_grade_history(session, grade, previous or 0, score, modified_by, reason)

        if enrollment_id not in changed:
            changed[enrollment_id] = session.get(Enrollment, enrollment_id)

    session.flush()
    return item, list(changed.values())
