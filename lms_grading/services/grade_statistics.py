"""Course-level grade statistics and tabular export."""

import statistics
from typing import List

from sqlmodel import Session, select

from lms_grading.config import Settings
from lms_grading.errors import NotFound
from lms_grading.models import Course, Enrollment, FinalGrade, GradeItem, Student, StudentGrade
from lms_grading.services.grade_calculator import compute_final_grade
from lms_grading.services.grade_rules import get_grade_rules
from lms_grading.services.scores import item_scores_for_enrollment
from lms_grading.utils import round_score

LETTERS = ("A", "B", "C", "D", "F")


def _summary(values: List[float]) -> dict:
    if not values:
        return {"mean": None, "median": None, "min": None, "max": None}
    return {
        "mean": round_score(statistics.mean(values)),
        "median": round_score(statistics.median(values)),
        "min": round_score(min(values)),
        "max": round_score(max(values)),
    }


def _get_course(session: Session, course_id: int) -> Course:
    course = session.get(Course, course_id)
    if not course:
        raise NotFound(f"Course {course_id} not found")
    return course


def _active_grades(
    session: Session, course_id: int, settings: Settings
) -> List[tuple]:
    """Every ACTIVE enrollment of a course with its final grade.

    The stored FinalGrade is used when there is one; otherwise the grade is
    computed without being persisted. Ordered by student name, then
    enrollment id.
    """
    rows = session.exec(
        select(Enrollment, Student)
        .join(Student, Student.id == Enrollment.student_id)
        .where((Enrollment.course_id == course_id) & (Enrollment.status == "ACTIVE"))
        .order_by(Student.name, Enrollment.id)
    ).all()

    stored = {
        fg.student_id: fg
        for fg in session.exec(select(FinalGrade).where(FinalGrade.course_id == course_id)).all()
    }

    results = []
    for enrollment, student in rows:
        grade = stored.get(student.id) or compute_final_grade(
            session, course_id, student.id, settings
        )
        results.append((enrollment, student, grade))
    return results


def _item_statistics(session: Session, course_id: int) -> List[dict]:
    items = session.exec(
        select(GradeItem)
        .where(GradeItem.course_id == course_id)
        .order_by(GradeItem.item_type, GradeItem.item_order, GradeItem.id)
    ).all()

    results = []
    for item in items:
        grades = session.exec(
            select(StudentGrade)
            .join(Enrollment, Enrollment.id == StudentGrade.enrollment_id)
            .where((StudentGrade.item_id == item.id) & (Enrollment.status == "ACTIVE"))
        ).all()
        scores = [g.score or 0 for g in grades]
        completed = sum(1 for g in grades if g.is_completed)
        summary = _summary(scores)
        results.append(
            {
                "id": item.id,
                "name": item.name,
                "type": item.item_type,
                "total_students": len(grades),
                "average_score": summary["mean"] if scores else 0,
                "median_score": summary["median"],
                "min_score": summary["min"],
                "max_score": summary["max"],
                "completed_count": completed,
                "completion_rate": round_score(completed / len(grades) * 100) if grades else 0,
            }
        )
    return results


def get_grade_statistics(session: Session, course_id: int, settings: Settings) -> dict:
    """Distribution of the final scores of a course.

    Counts the same students as :func:`export_grade_data`: every ACTIVE
    enrollment. Raises NotFound for an unknown course; a course without
    active students returns ``count == 0`` with empty summary values.
    """
    course = _get_course(session, course_id)
    grades = [grade for _, _, grade in _active_grades(session, course_id, settings)]
    scores = [g.final_score for g in grades]

    distribution = {letter: 0 for letter in LETTERS}
    for g in grades:
        distribution[g.letter_grade] = distribution.get(g.letter_grade, 0) + 1

    passed = sum(
        1 for g in grades if not g.attendance_failed and g.final_score >= settings.PASSING_SCORE
    )
    rules = get_grade_rules(session, course_id)

    return {
        "course_id": course.id,
        "course_title": course.title,
        "count": len(grades),
        **_summary(scores),
        "passed_count": passed,
        "pass_rate": round_score(passed / len(grades) * 100) if grades else 0,
        "attendance_failed_count": sum(1 for g in grades if g.attendance_failed),
        "distribution": distribution,
        "grade_rules": (
            {
                "attendance_weight": rules.attendance_weight,
                "assignment_weight": rules.assignment_weight,
                "exam_weight": rules.exam_weight,
                "min_attendance_rate": rules.min_attendance_rate,
            }
            if rules
            else None
        ),
        "items": _item_statistics(session, course_id),
    }


def export_grade_data(session: Session, course_id: int, settings: Settings) -> dict:
    """One row per active student, ordered by name then enrollment id."""
    course = _get_course(session, course_id)

    students = []
    for enrollment, student, grade in _active_grades(session, course_id, settings):
        item_scores = {
            str(item.id): (sg.score if sg else 0)
            for item, sg in item_scores_for_enrollment(session, course_id, enrollment.id)
        }
        students.append(
            {
                "enrollment_id": enrollment.id,
                "student_id": student.id,
                "student_name": student.name,
                "email": student.email,
                "attendance_score": grade.attendance_score,
                "assignment_score": grade.assignment_score,
                "exam_score": grade.exam_score,
                "final_score": grade.final_score,
                "letter_grade": grade.letter_grade,
                "attendance_failed": grade.attendance_failed,
                "item_scores": item_scores,
            }
        )

    return {"course_id": course.id, "course_title": course.title, "students": students}
