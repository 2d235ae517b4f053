import pytest

from lms_grading.errors import NotFound, ValidationError
from lms_grading.services.grade_rules import (
    get_grade_rules,
    resolve_grade_rules,
    set_grade_rules,
    validate_weights,
)


@pytest.mark.parametrize(
    "weights",
    [
        (20, 40, 30, 70),
        (50, 50, 10, 0),
        (-10, 60, 50, 0),
        (20, 40, 40, -1),
        (20, 40, 40, 101),
        (None, 50, 50, 0),
    ],
)
def test_invalid_weights_rejected(weights):
    with pytest.raises(ValidationError):
        validate_weights(*weights)


def test_fractional_weights_accepted():
    validate_weights(33.3, 33.3, 33.4, 50)


def test_rejected_weights_leave_rules_unchanged(db, course_setup):
    course_id = course_setup["course_id"]
    with db.transaction() as session:
        set_grade_rules(session, course_id, 20, 40, 40, 70)

    with pytest.raises(ValidationError):
        with db.transaction() as session:
            set_grade_rules(session, course_id, 30, 30, 30, 70)

    with db.session() as session:
        rules = get_grade_rules(session, course_id)
    assert (rules.attendance_weight, rules.assignment_weight, rules.exam_weight) == (20, 40, 40)
    assert rules.min_attendance_rate == 70


def test_set_rules_replaces_existing(db, course_setup):
    course_id = course_setup["course_id"]
    with db.transaction() as session:
        first = set_grade_rules(session, course_id, 20, 40, 40, 70)
    with db.transaction() as session:
        second = set_grade_rules(session, course_id, 10, 60, 30, 50)

    assert first.id == second.id
    assert second.assignment_weight == 60


def test_set_rules_for_unknown_course(db):
    with pytest.raises(NotFound):
        with db.transaction() as session:
            set_grade_rules(session, 12345, 20, 40, 40, 0)


def test_resolve_defaults_when_unconfigured(db, settings, course_setup):
    with db.session() as session:
        weights = resolve_grade_rules(session, course_setup["course_id"], settings)
    assert weights.is_default is True
    assert (weights.attendance_weight, weights.assignment_weight, weights.exam_weight) == (20, 50, 30)
    assert weights.min_attendance_rate == 0
