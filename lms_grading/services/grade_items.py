from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from lms_grading.app_logger import get_logger
from lms_grading.config import Settings
from lms_grading.errors import NotFound, ValidationError
from lms_grading.models import ITEM_TYPES, Course, Enrollment, GradeItem, StudentGrade
from lms_grading.services.grade_calculator import recompute_course_grades
from lms_grading.utils import sanitize_text, utc_now

logger = get_logger("grade_items")


def _validate_item(item_type: str, name: Optional[str]) -> str:
    if item_type not in ITEM_TYPES:
        raise ValidationError("Item type must be ASSIGNMENT or EXAM")
    cleaned = sanitize_text(name)
    if not cleaned:
        raise ValidationError("Item title cannot be empty")
    return cleaned


def create_grade_item(
    session: Session,
    course_id: int,
    item_type: str,
    name: str,
    settings: Settings,
    due_date: Optional[datetime] = None,
) -> GradeItem:
    """Add an assignment or exam to a course.

    Every ACTIVE enrollment gets a placeholder score of 0 for the new item and
    the final grades of those students are recomputed.
    """
    cleaned_name = _validate_item(item_type, name)

    course = session.get(Course, course_id)
    if not course:
        raise NotFound(f"Course {course_id} not found")

    current_count, max_order = session.exec(
        select(func.count(GradeItem.id), func.coalesce(func.max(GradeItem.item_order), 0)).where(
            (GradeItem.course_id == course_id) & (GradeItem.item_type == item_type)
        )
    ).one()
    limit = course.assignment_count if item_type == "ASSIGNMENT" else course.exam_count
    if limit is not None and current_count >= limit:
        raise ValidationError(f"A course can have at most {limit} {item_type} items")

    item = GradeItem(
        course_id=course_id,
        item_type=item_type,
        name=cleaned_name,
        item_order=max_order + 1,
        due_date=due_date,
    )
    session.add(item)
    session.flush()

    enrollments = session.exec(
        select(Enrollment).where(
            (Enrollment.course_id == course_id) & (Enrollment.status == "ACTIVE")
        )
    ).all()
    for enrollment in enrollments:
        session.add(StudentGrade(enrollment_id=enrollment.id, item_id=item.id, score=0))
    session.flush()

    recompute_course_grades(session, course_id, settings)
    logger.info(
        "Grade item %s created in course %s with %d student records",
        item.id,
        course_id,
        len(enrollments),
    )
    return item


def get_grade_item(session: Session, item_id: int) -> GradeItem:
    item = session.get(GradeItem, item_id)
    if not item:
        raise NotFound(f"Grade item {item_id} not found")
    return item


def list_grade_items(session: Session, course_id: int) -> List[GradeItem]:
    if not session.get(Course, course_id):
        raise NotFound(f"Course {course_id} not found")
    return session.exec(
        select(GradeItem)
        .where(GradeItem.course_id == course_id)
        .order_by(GradeItem.item_type, GradeItem.item_order, GradeItem.id)
    ).all()


def update_grade_item(
    session: Session,
    item_id: int,
    item_type: str,
    name: str,
    settings: Settings,
    due_date: Optional[datetime] = None,
) -> GradeItem:
    cleaned_name = _validate_item(item_type, name)
    item = get_grade_item(session, item_id)

    type_changed = item.item_type != item_type
    item.name = cleaned_name
    item.item_type = item_type
    item.due_date = due_date
    item.updated_at = utc_now()
    session.add(item)
    session.flush()

    if type_changed:
        recompute_course_grades(session, item.course_id, settings)
    return item


def delete_grade_item(session: Session, item_id: int, settings: Settings) -> None:
    """Delete an item and its scores; grade history is kept."""
    item = get_grade_item(session, item_id)
    course_id = item.course_id

    grades = session.exec(select(StudentGrade).where(StudentGrade.item_id == item_id)).all()
    for grade in grades:
        session.delete(grade)
    session.flush()
    session.delete(item)
    session.flush()

    recompute_course_grades(session, course_id, settings)
    logger.info("Grade item %s deleted with %d student records", item_id, len(grades))
