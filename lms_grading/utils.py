"""Utility functions for sanitization and validation."""

import math
from datetime import datetime, timezone

import bleach

from lms_grading.errors import ValidationError


def sanitize_text(text: str | None) -> str | None:
    """Strip all HTML from free text (change reasons, names).

    Returns None for empty input so optional columns stay NULL.
    """
    if text is None:
        return None
    sanitized = bleach.clean(text, tags=[], strip=True).strip()
    return sanitized or None


def validate_score(score: float, label: str = "score") -> float:
    """Validate that a score is a finite number within [0, 100].

    Raises:
        ValidationError: If the score is missing or out of range
    """
    if score is None:
        raise ValidationError(f"{label} is required")
    try:
        value = float(score)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a number")
    if math.isnan(value) or value < 0 or value > 100:
        raise ValidationError(f"{label} {score} out of range [0, 100]")
    return value


def round_score(value: float) -> float:
    return round(float(value or 0), 2)


def utc_now() -> datetime:
    """Timezone-aware current UTC time for timestamp columns."""
    return datetime.now(timezone.utc)

