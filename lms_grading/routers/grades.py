"""Grade management routes: items, scores, attendance, rules, final grades."""

from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import Session

from lms_grading.config import Settings
from lms_grading.database import Database, get_database, get_session
from lms_grading.deps import (
    STAFF_ROLES,
    CurrentUser,
    ensure_self_or_staff,
    get_current_user,
    get_settings,
    require_role,
)
from lms_grading.errors import NotFound
from lms_grading.models import Course, Student
from lms_grading.services import grade_items as items_service
from lms_grading.services.grade_calculator import (
    get_final_grade,
    get_student_grades,
    recompute_course_grades,
)
from lms_grading.services.grade_history import list_grade_history
from lms_grading.services.grade_rules import get_grade_rules, resolve_grade_rules, set_grade_rules
from lms_grading.services.grade_statistics import export_grade_data, get_grade_statistics
from lms_grading.services.gradebook import record_attendance, update_scores

router = APIRouter()


# --- Request schemas ---


class GradeItemIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    course_id: int = Field(alias="courseId")
    type: str
    title: str = Field(min_length=1, max_length=100)
    due_date: Optional[datetime] = None


class GradeItemUpdateIn(BaseModel):
    type: str
    title: str = Field(min_length=1, max_length=100)
    due_date: Optional[datetime] = None


class ScoreEntryIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enrollment_id: int = Field(alias="enrollmentId")
    score: float


class ScoresUpdateIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    grade_item_id: int = Field(alias="gradeItemId")
    scores: List[ScoreEntryIn]
    reason: Optional[str] = Field(default=None, max_length=1000)


class AttendanceIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    student_id: str = Field(alias="studentId", min_length=1)
    course_id: int = Field(alias="courseId")
    session_type: str = Field(alias="sessionType")
    session_id: str = Field(alias="sessionId", min_length=1)
    duration_seconds: int = Field(alias="durationSeconds")
    total_duration_seconds: int = Field(alias="totalDurationSeconds")
    attendance_date: date = Field(alias="attendanceDate")


class GradeRulesIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    course_id: int = Field(alias="courseId")
    attendance_weight: float
    assignment_weight: float
    exam_weight: float
    min_attendance_weight: float


# --- Grade items ---


@router.post("/items")
def api_create_item(
    payload: GradeItemIn = Body(...),
    db: Database = Depends(get_database),
    settings: Settings = Depends(get_settings),
    current_user: CurrentUser = Depends(require_role(STAFF_ROLES)),
):
    with db.transaction() as session:
        item = items_service.create_grade_item(
            session,
            course_id=payload.course_id,
            item_type=payload.type,
            name=payload.title,
            settings=settings,
            due_date=payload.due_date,
        )
        data = item.model_dump()
    return {"success": True, "message": "Grade item created", "data": data}


@router.get("/items/{item_id}")
def api_get_item(
    item_id: int,
    session: Session = Depends(get_session),
    current_user: CurrentUser = Depends(get_current_user),
):
    item = items_service.get_grade_item(session, item_id)
    return {"success": True, "data": item.model_dump()}


@router.put("/items/{item_id}")
def api_update_item(
    item_id: int,
    payload: GradeItemUpdateIn = Body(...),
    db: Database = Depends(get_database),
    settings: Settings = Depends(get_settings),
    current_user: CurrentUser = Depends(require_role(STAFF_ROLES)),
):
    with db.transaction() as session:
        item = items_service.update_grade_item(
            session,
            item_id,
            item_type=payload.type,
            name=payload.title,
            settings=settings,
            due_date=payload.due_date,
        )
        data = item.model_dump()
    return {"success": True, "message": "Grade item updated", "data": data}


@router.delete("/items/{item_id}")
def api_delete_item(
    item_id: int,
    db: Database = Depends(get_database),
    settings: Settings = Depends(get_settings),
    current_user: CurrentUser = Depends(require_role(STAFF_ROLES)),
):
    with db.transaction() as session:
        items_service.delete_grade_item(session, item_id, settings)
    return {"success": True, "message": "Grade item deleted"}


@router.get("/courses/{course_id}/items")
def api_list_course_items(
    course_id: int,
    session: Session = Depends(get_session),
    current_user: CurrentUser = Depends(get_current_user),
):
    items = items_service.list_grade_items(session, course_id)
    return {"success": True, "data": [item.model_dump() for item in items]}


# --- Scores ---


@router.put("/scores")
def api_update_scores(
    payload: ScoresUpdateIn = Body(...),
    db: Database = Depends(get_database),
    settings: Settings = Depends(get_settings),
    current_user: CurrentUser = Depends(require_role(STAFF_ROLES)),
):
    """Enter or correct scores for one item; every change is audited."""
    with db.transaction() as session:
        result = update_scores(
            session,
            item_id=payload.grade_item_id,
            scores=[entry.model_dump() for entry in payload.scores],
            modified_by=current_user.id,
            settings=settings,
            reason=payload.reason,
        )
        final_grades = [fg.model_dump() for fg in result["final_grades"]]
    return {
        "success": True,
        "message": "Scores updated",
        "updated_count": result["updated_count"],
        "data": {"final_grades": final_grades},
    }


@router.get("/scores/{grade_id}/history")
def api_grade_history(
    grade_id: int,
    session: Session = Depends(get_session),
    current_user: CurrentUser = Depends(require_role(STAFF_ROLES)),
):
    entries = list_grade_history(session, grade_id)
    return {"success": True, "data": [entry.model_dump() for entry in entries]}


# --- Attendance ---


@router.post("/attendance")
def api_record_attendance(
    payload: AttendanceIn = Body(...),
    db: Database = Depends(get_database),
    settings: Settings = Depends(get_settings),
    current_user: CurrentUser = Depends(get_current_user),
):
    ensure_self_or_staff(current_user, payload.student_id)
    with db.transaction() as session:
        result = record_attendance(
            session,
            student_id=payload.student_id,
            course_id=payload.course_id,
            session_type=payload.session_type,
            session_id=payload.session_id,
            duration_seconds=payload.duration_seconds,
            total_duration_seconds=payload.total_duration_seconds,
            attendance_date=payload.attendance_date,
            settings=settings,
        )
        data = {
            "record": result["record"].model_dump(),
            "final_grade": result["final_grade"].model_dump(),
        }
    return {"success": True, "message": "Attendance recorded", "data": data}


# --- Grade rules ---


@router.post("/rules")
def api_set_rules(
    payload: GradeRulesIn = Body(...),
    db: Database = Depends(get_database),
    settings: Settings = Depends(get_settings),
    current_user: CurrentUser = Depends(require_role(STAFF_ROLES)),
):
    with db.transaction() as session:
        rules = set_grade_rules(
            session,
            payload.course_id,
            attendance_weight=payload.attendance_weight,
            assignment_weight=payload.assignment_weight,
            exam_weight=payload.exam_weight,
            min_attendance_rate=payload.min_attendance_weight,
        )
        recomputed = recompute_course_grades(session, payload.course_id, settings)
        data = rules.model_dump()
    return {
        "success": True,
        "message": "Grade rules saved",
        "recomputed_count": len(recomputed),
        "data": data,
    }


@router.get("/rules/{course_id}")
def api_get_rules(
    course_id: int,
    session: Session = Depends(get_session),
    current_user: CurrentUser = Depends(get_current_user),
):
    if not session.get(Course, course_id):
        raise NotFound(f"Course {course_id} not found")
    rules = get_grade_rules(session, course_id)
    if rules is None:
        raise NotFound(f"Grade rules are not configured for course {course_id}")
    return {"success": True, "data": rules.model_dump()}


# --- Final grades, statistics, export ---


@router.get("/final/{course_id}/{student_id}")
def api_final_grade(
    course_id: int,
    student_id: str,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    current_user: CurrentUser = Depends(get_current_user),
):
    ensure_self_or_staff(current_user, student_id)
    final_grade = get_final_grade(session, course_id, student_id)
    if final_grade is None:
        raise NotFound("Final grade not found")

    course = session.get(Course, course_id)
    student = session.get(Student, student_id)
    weights = resolve_grade_rules(session, course_id, settings)
    return {
        "success": True,
        "data": {
            **final_grade.model_dump(),
            "student_name": student.name if student else None,
            "course_title": course.title if course else None,
            **weights.as_dict(),
        },
    }


@router.get("/statistics/{course_id}")
def api_statistics(
    course_id: int,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    current_user: CurrentUser = Depends(require_role(STAFF_ROLES)),
):
    return {"success": True, "data": get_grade_statistics(session, course_id, settings)}


@router.get("/export/{course_id}")
def api_export(
    course_id: int,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    current_user: CurrentUser = Depends(require_role(STAFF_ROLES)),
):
    return {"success": True, "data": export_grade_data(session, course_id, settings)}


@router.get("/course/{course_id}/student/{student_id}")
def api_student_course_grades(
    course_id: int,
    student_id: str,
    session: Session = Depends(get_session),
    settings: Settings = Depends(get_settings),
    current_user: CurrentUser = Depends(get_current_user),
):
    ensure_self_or_staff(current_user, student_id)
    return {"success": True, "data": get_student_grades(session, course_id, student_id, settings)}
