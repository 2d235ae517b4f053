"""Course, student and enrollment management routes."""

from typing import Optional

from fastapi import APIRouter, Body, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import func
from sqlmodel import Session, select

from lms_grading.config import Settings
from lms_grading.database import Database, get_database, get_session
from lms_grading.deps import (
    STAFF_ROLES,
    CurrentUser,
    get_current_user,
    get_settings,
    require_role,
)
from lms_grading.models import Enrollment, GradeItem
from lms_grading.services import courses as courses_service

router = APIRouter()


class CourseIn(BaseModel):
    code: str
    title: str
    description: Optional[str] = Field(default=None, max_length=500)
    assignment_count: Optional[int] = None
    exam_count: Optional[int] = None


class StudentIn(BaseModel):
    name: str
    email: Optional[str] = None


class EnrollmentIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    course_id: int = Field(alias="courseId")
    student_id: str = Field(alias="studentId", min_length=1)


class EnrollmentStatusIn(BaseModel):
    status: str


@router.post("/courses")
def api_create_course(
    payload: CourseIn = Body(...),
    db: Database = Depends(get_database),
    current_user: CurrentUser = Depends(require_role(STAFF_ROLES)),
):
    with db.transaction() as session:
        course = courses_service.create_course(
            session,
            code=payload.code,
            title=payload.title,
            description=payload.description,
            assignment_count=payload.assignment_count,
            exam_count=payload.exam_count,
        )
        data = course.model_dump()
    return {"success": True, "message": "Course created", "data": data}


@router.get("/courses")
def api_list_courses(
    session: Session = Depends(get_session),
    current_user: CurrentUser = Depends(get_current_user),
):
    courses = courses_service.list_courses(session)
    item_counts = dict(
        session.exec(
            select(GradeItem.course_id, func.count(GradeItem.id)).group_by(GradeItem.course_id)
        ).all()
    )
    enrollment_counts = dict(
        session.exec(
            select(Enrollment.course_id, func.count(Enrollment.id))
            .where(Enrollment.status == "ACTIVE")
            .group_by(Enrollment.course_id)
        ).all()
    )
    return {
        "success": True,
        "data": [
            {
                **course.model_dump(),
                "item_count": item_counts.get(course.id, 0),
                "student_count": enrollment_counts.get(course.id, 0),
            }
            for course in courses
        ],
    }


@router.get("/courses/{course_id}")
def api_get_course(
    course_id: int,
    session: Session = Depends(get_session),
    current_user: CurrentUser = Depends(get_current_user),
):
    course = courses_service.get_course(session, course_id)
    return {"success": True, "data": course.model_dump()}


@router.put("/students/{student_id}")
def api_upsert_student(
    student_id: str,
    payload: StudentIn = Body(...),
    db: Database = Depends(get_database),
    current_user: CurrentUser = Depends(require_role(STAFF_ROLES)),
):
    with db.transaction() as session:
        student = courses_service.upsert_student(session, student_id, payload.name, payload.email)
        data = student.model_dump()
    return {"success": True, "data": data}


@router.post("/enrollments")
def api_enroll(
    payload: EnrollmentIn = Body(...),
    db: Database = Depends(get_database),
    current_user: CurrentUser = Depends(require_role(STAFF_ROLES)),
):
    with db.transaction() as session:
        enrollment = courses_service.enroll_student(session, payload.course_id, payload.student_id)
        data = enrollment.model_dump()
    return {"success": True, "message": "Student enrolled", "data": data}


@router.patch("/enrollments/{enrollment_id}/status")
def api_set_enrollment_status(
    enrollment_id: int,
    payload: EnrollmentStatusIn = Body(...),
    db: Database = Depends(get_database),
    settings: Settings = Depends(get_settings),
    current_user: CurrentUser = Depends(require_role(STAFF_ROLES)),
):
    with db.transaction() as session:
        enrollment = courses_service.set_enrollment_status(
            session, enrollment_id, payload.status, settings
        )
        data = enrollment.model_dump()
    return {"success": True, "data": data}
