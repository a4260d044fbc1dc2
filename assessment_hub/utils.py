"""Utility functions for sanitization and validation."""

from datetime import datetime, timezone
from typing import Optional

import bleach

QUESTION_ALLOWED_TAGS = ["b", "i", "u", "em", "strong", "p", "br", "code", "pre", "ul", "ol", "li"]


def sanitize_question_text(text: str) -> str:
    """Sanitize question text to prevent XSS attacks.

    Allows basic formatting tags but removes script/dangerous content.
    """
    sanitized = bleach.clean(text, tags=QUESTION_ALLOWED_TAGS, attributes={}, strip=True)
    return sanitized.strip()


def sanitize_plain_text(text: str) -> str:
    """Strip all HTML, leaving plain text (used for descriptions and titles)."""
    return bleach.clean(text, tags=[], strip=True).strip()


def validate_passing_score(passing_score: int) -> bool:
    """Validate that a passing score is a percentage.

    Raises:
        ValueError: If the score is outside 0..100
    """
    if passing_score < 0 or passing_score > 100:
        raise ValueError(f"Passing score {passing_score} out of range [0, 100]")
    return True


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise a client datetime to the naive UTC values stored in the database."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
