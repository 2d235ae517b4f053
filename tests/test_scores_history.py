"""Score entry and the grade-history audit trail."""

import pytest
from sqlmodel import select

from lms_grading.errors import NotFound, ValidationError
from lms_grading.models import FinalGrade, GradeHistory, StudentGrade
from lms_grading.services.grade_history import (
    DEFAULT_REASON,
    list_grade_history,
    record_grade_history,
)
from lms_grading.services.gradebook import update_scores


def _update(db, settings, item_id, scores, reason=None, modified_by="instructor-1"):
    with db.transaction() as session:
        return update_scores(
            session,
            item_id,
            [{"enrollment_id": e, "score": s} for e, s in scores],
            modified_by=modified_by,
            settings=settings,
            reason=reason,
        )


def _grade(session, item_id, enrollment_id):
    return session.exec(
        select(StudentGrade).where(
            (StudentGrade.item_id == item_id) & (StudentGrade.enrollment_id == enrollment_id)
        )
    ).one()


def test_each_change_writes_one_history_row(db, settings, course_setup):
    item_id = course_setup["assignment_id"]
    enrollment_id = course_setup["enrollments"]["student-1"]

    for score in (70, 80, 90):
        _update(db, settings, item_id, [(enrollment_id, score)])

    with db.session() as session:
        grade = _grade(session, item_id, enrollment_id)
        history = list_grade_history(session, grade.id)

    assert grade.score == 90
    assert [(h.previous_score, h.new_score) for h in history] == [(0, 70), (70, 80), (80, 90)]
    assert all(h.modified_by == "instructor-1" for h in history)
    assert all(h.reason == DEFAULT_REASON for h in history)
    assert all(h.item_id == item_id and h.enrollment_id == enrollment_id for h in history)


def test_unchanged_score_writes_no_history(db, settings, course_setup):
    item_id = course_setup["assignment_id"]
    enrollment_id = course_setup["enrollments"]["student-1"]

    first = _update(db, settings, item_id, [(enrollment_id, 70)])
    second = _update(db, settings, item_id, [(enrollment_id, 70)])

    assert first["updated_count"] == 1
    assert second["updated_count"] == 0
    with db.session() as session:
        grade = _grade(session, item_id, enrollment_id)
        assert len(list_grade_history(session, grade.id)) == 1


def test_score_entry_marks_grade_completed(db, settings, course_setup):
    item_id = course_setup["exam_id"]
    enrollment_id = course_setup["enrollments"]["student-2"]

    _update(db, settings, item_id, [(enrollment_id, 0)])

    with db.session() as session:
        grade = _grade(session, item_id, enrollment_id)
        history = list_grade_history(session, grade.id)

    assert grade.is_completed is True
    assert grade.submission_date is not None
    # 0 -> 0 is not a change worth auditing
    assert history == []


def test_reason_is_sanitized(db, settings, course_setup):
    item_id = course_setup["assignment_id"]
    enrollment_id = course_setup["enrollments"]["student-1"]

    _update(db, settings, item_id, [(enrollment_id, 55)], reason="<b>Re-marked</b> question 3")

    with db.session() as session:
        grade = _grade(session, item_id, enrollment_id)
        (entry,) = list_grade_history(session, grade.id)
    assert entry.reason == "Re-marked question 3"


@pytest.mark.parametrize("bad_score", [-1, 100.01, 150, float("nan"), None, "abc"])
def test_out_of_range_score_rejected_without_mutation(db, settings, course_setup, bad_score):
    item_id = course_setup["assignment_id"]
    enrollment_1 = course_setup["enrollments"]["student-1"]
    enrollment_2 = course_setup["enrollments"]["student-2"]

    with pytest.raises(ValidationError):
        _update(db, settings, item_id, [(enrollment_1, 50), (enrollment_2, bad_score)])

    with db.session() as session:
        assert _grade(session, item_id, enrollment_1).score == 0
        assert _grade(session, item_id, enrollment_2).score == 0
        assert session.exec(select(GradeHistory)).all() == []


@pytest.mark.parametrize("score", [0, 100, 42.5])
def test_boundary_scores_accepted(db, settings, course_setup, score):
    item_id = course_setup["assignment_id"]
    enrollment_id = course_setup["enrollments"]["student-1"]

    _update(db, settings, item_id, [(enrollment_id, score)])

    with db.session() as session:
        assert _grade(session, item_id, enrollment_id).score == score


def test_unknown_enrollment_rejected_without_mutation(db, settings, course_setup):
    item_id = course_setup["assignment_id"]
    enrollment_id = course_setup["enrollments"]["student-1"]

    with pytest.raises(NotFound):
        _update(db, settings, item_id, [(enrollment_id, 60), (9999, 60)])

    with db.session() as session:
        assert _grade(session, item_id, enrollment_id).score == 0


def test_unknown_item_rejected(db, settings, course_setup):
    with pytest.raises(NotFound):
        _update(db, settings, 9999, [(course_setup["enrollments"]["student-1"], 60)])


def test_empty_batch_rejected(db, settings, course_setup):
    with pytest.raises(ValidationError):
        _update(db, settings, course_setup["assignment_id"], [])


def test_failure_after_update_rolls_everything_back(db, settings, course_setup):
    item_id = course_setup["assignment_id"]
    enrollment_id = course_setup["enrollments"]["student-1"]
    course_id = course_setup["course_id"]

    with db.session() as session:
        before = session.exec(
            select(FinalGrade).where(
                (FinalGrade.course_id == course_id) & (FinalGrade.student_id == "student-1")
            )
        ).one().model_dump()

    with pytest.raises(RuntimeError):
        with db.transaction() as session:
            update_scores(
                session,
                item_id,
                [{"enrollment_id": enrollment_id, "score": 95}],
                modified_by="instructor-1",
                settings=settings,
            )
            raise RuntimeError("connection lost")

    with db.session() as session:
        assert _grade(session, item_id, enrollment_id).score == 0
        assert session.exec(select(GradeHistory)).all() == []
        after = session.exec(
            select(FinalGrade).where(
                (FinalGrade.course_id == course_id) & (FinalGrade.student_id == "student-1")
            )
        ).one().model_dump()
    assert after == before


def test_record_grade_history_noop_for_equal_scores(db, course_setup):
    with db.transaction() as session:
        grade = _grade(session, course_setup["assignment_id"], course_setup["enrollments"]["student-1"])
        assert record_grade_history(session, grade, 40, 40, "instructor-1") is None
        entry = record_grade_history(session, grade, 40, 45, "instructor-1", "typo")

    assert entry.previous_score == 40
    assert entry.new_score == 45
    assert entry.reason == "typo"


def test_batch_update_recomputes_each_student(db, settings, course_setup):
    item_id = course_setup["assignment_id"]
    result = _update(
        db,
        settings,
        item_id,
        [
            (course_setup["enrollments"]["student-1"], 100),
            (course_setup["enrollments"]["student-2"], 60),
        ],
    )

    assert result["updated_count"] == 2
    scores = {fg.student_id: fg.assignment_score for fg in result["final_grades"]}
    assert scores == {"student-1": 100.0, "student-2": 60.0}
