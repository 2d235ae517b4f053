import pytest
from fastapi.testclient import TestClient
from jose import jwt

from lms_grading.config import Settings
from lms_grading.database import Database
from lms_grading.main import create_app
from lms_grading.services import courses as courses_service
from lms_grading.services.grade_items import create_grade_item

TEST_JWT_SECRET = "test-secret"


# ============================================================================
# IN-MEMORY DATABASE FOR TESTING
# ============================================================================


@pytest.fixture
def settings():
    return Settings(
        ENVIRONMENT="test",
        DATABASE_URL="sqlite://",
        JWT_SECRET=TEST_JWT_SECRET,
        JWT_ALGORITHM="HS256",
        JWT_AUDIENCE=None,
        JWT_ISSUER=None,
        REQUIRE_GRADE_RULES=False,
        ATTENDANCE_FAIL_POLICY="zero",
    )


@pytest.fixture
def db():
    """A fresh in-memory database per test (StaticPool keeps one connection)."""
    database = Database("sqlite://")
    database.create_db_and_tables()
    yield database
    database.drop_db_and_tables()
    database.dispose()


@pytest.fixture
def app(settings, db):
    return create_app(settings=settings, database=db)


@pytest.fixture
def client(app):
    return TestClient(app)


# ============================================================================
# AUTH HELPERS
# ============================================================================


def _make_token(subject, groups, secret=TEST_JWT_SECRET):
    return jwt.encode({"sub": subject, "cognito:groups": groups}, secret, algorithm="HS256")


@pytest.fixture
def auth_headers():
    """Factory returning Authorization headers for a subject and its groups."""

    def _headers(subject, groups, secret=TEST_JWT_SECRET):
        return {"Authorization": f"Bearer {_make_token(subject, groups, secret)}"}

    return _headers


@pytest.fixture
def staff_headers(auth_headers):
    return auth_headers("instructor-1", ["INSTRUCTOR"])


@pytest.fixture
def student_headers(auth_headers):
    return auth_headers("student-1", ["STUDENT"])


# ============================================================================
# SAMPLE DATA
# ============================================================================


@pytest.fixture
def course_setup(db, settings):
    """A course with two enrolled students, one assignment and one exam."""
    with db.transaction() as session:
        course = courses_service.create_course(
            session, code="CS101", title="Introduction to Computer Science"
        )
        courses_service.upsert_student(session, "student-1", "Alice Tan", "alice.tan@example.com")
        courses_service.upsert_student(session, "student-2", "Bob Lim", "bob.lim@example.com")
        enrollment_1 = courses_service.enroll_student(session, course.id, "student-1")
        enrollment_2 = courses_service.enroll_student(session, course.id, "student-2")
        assignment = create_grade_item(session, course.id, "ASSIGNMENT", "Assignment 1", settings)
        exam = create_grade_item(session, course.id, "EXAM", "Midterm", settings)

        return {
            "course_id": course.id,
            "assignment_id": assignment.id,
            "exam_id": exam.id,
            "enrollments": {
                "student-1": enrollment_1.id,
                "student-2": enrollment_2.id,
            },
        }
