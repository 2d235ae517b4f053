"""LMS grading backend: final grades, grade history and course statistics."""
