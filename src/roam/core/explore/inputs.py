"""Synthetic values for form fields.

Values are a pure function of the field's type and its naming hints so that
two runs over the same page type the same text.
"""

from __future__ import annotations

from .normalizer import CandidateElement

_BY_TYPE: dict[str, str] = {
    "email": "test@example.com",
    "tel": "555-0123",
    "number": "42",
    "date": "2024-01-15",
    "search": "test search query",
    "url": "https://example.com",
    "password": "Test123!",
}

# Checked in order against placeholder, aria-label and name.
_BY_HINT: tuple[tuple[str, str], ...] = (
    ("email", "test@example.com"),
    ("e-mail", "test@example.com"),
    ("phone", "555-0123"),
    ("mobile", "555-0123"),
    ("search", "test search query"),
    ("password", "Test123!"),
    ("zip", "10001"),
    ("postal", "10001"),
    ("city", "Springfield"),
    ("address", "123 Main St"),
    ("website", "https://example.com"),
    ("name", "Test User"),
    ("message", "This is a test message for exploration purposes."),
    ("comment", "This is a test message for exploration purposes."),
)

DEFAULT_VALUE = "test input"


def synthesize_value(element: CandidateElement) -> str:
    input_type = (element.input_type or "").lower()
    if input_type in _BY_TYPE:
        return _BY_TYPE[input_type]

    hints = " ".join(
        h.lower() for h in (element.placeholder, element.aria_label, element.name) if h
    )
    for needle, value in _BY_HINT:
        if needle in hints:
            return value
    return DEFAULT_VALUE
