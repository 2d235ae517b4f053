from typing import List, Optional

from sqlmodel import Session, select

from lms_grading.app_logger import get_logger
from lms_grading.models import GradeHistory, StudentGrade
from lms_grading.utils import sanitize_text

logger = get_logger("grade_history")

DEFAULT_REASON = "administrative correction"


def record_grade_history(
    session: Session,
    grade: StudentGrade,
    previous_score: float,
    new_score: float,
    modified_by: str,
    reason: Optional[str] = None,
) -> Optional[GradeHistory]:
    """Append one audit entry for a score change.

    Must run in the same transaction as the score update. Unchanged scores
    are not audited and return None. Errors propagate so that a failed audit
    write rolls the score change back with it.
    """
    if float(previous_score) == float(new_score):
        return None

    entry = GradeHistory(
        grade_id=grade.id,
        item_id=grade.item_id,
        enrollment_id=grade.enrollment_id,
        previous_score=previous_score,
        new_score=new_score,
        modified_by=modified_by,
        reason=sanitize_text(reason) or DEFAULT_REASON,
    )
    session.add(entry)
    session.flush()
    logger.info(
        "Grade %s changed %g -> %g by %s", grade.id, previous_score, new_score, modified_by
    )
    return entry


def list_grade_history(session: Session, grade_id: int) -> List[GradeHistory]:
    return session.exec(
        select(GradeHistory)
        .where(GradeHistory.grade_id == grade_id)
        .order_by(GradeHistory.created_at, GradeHistory.id)
    ).all()
