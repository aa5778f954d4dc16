"""Input validation for Voice Alarm.

This module provides the clamping and validation applied to user input.
Numeric fields are clamped into range rather than rejected; everything
else raises ValidationError with a descriptive message.

CRITICAL: This module must have NO Flask dependencies.
"""

from __future__ import annotations

import math
import re
from typing import Any, Dict, Optional

from .models import (
    DEFAULT_SOUND,
    MAX_MESSAGE_REPEAT,
    MIN_MESSAGE_REPEAT,
    Repeat,
)
from .tones import SOUND_CATALOG


class ValidationError(ValueError):
    """Validation error with field and message attributes."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"

    def __repr__(self) -> str:
        return f"ValidationError(field='{self.field}', message='{self.message}')"


__all__ = [
    "ValidationError",
    "clamp",
    "clamp_hours",
    "clamp_minutes",
    "clamp_message_repeat",
    "parse_time",
    "normalize_repeat",
    "normalize_sound",
    "validate_sound",
    "validate_alarm_id",
    "validate_text",
    "validate_language",
    "parse_seconds",
]

# Limits
MAX_LABEL_LENGTH = 100
MAX_MESSAGE_LENGTH = 1_000
MAX_LANGUAGE_LENGTH = 35
ALARM_ID_LENGTH = 32

_TIME_RE = re.compile(r"^\s*(\d{1,2})\s*:\s*(\d{1,2})\s*$")
_LANGUAGE_RE = re.compile(r"^[A-Za-z]{2,3}(-[A-Za-z0-9]{2,8})*$")


def _as_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(field_name, "must be a number, got bool")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(
            field_name, f"must be a number, got {type(value).__name__}"
        ) from None
    if not math.isfinite(number):
        raise ValidationError(field_name, "must be a finite number")
    return int(number)


def clamp(value: Any, low: int, high: int, field_name: str) -> int:
    """Convert a value to int and clamp it into [low, high]."""
    return max(low, min(high, _as_int(value, field_name)))


def clamp_hours(value: Any) -> int:
    """Clamp an hour value to 0-23."""
    return clamp(value, 0, 23, "hours")


def clamp_minutes(value: Any) -> int:
    """Clamp a minute value to 0-59."""
    return clamp(value, 0, 59, "minutes")


def clamp_message_repeat(value: Any) -> int:
    """Clamp a message repeat count to 1-5."""
    return clamp(value, MIN_MESSAGE_REPEAT, MAX_MESSAGE_REPEAT, "message_repeat")


def parse_time(value: str) -> Dict[str, int]:
    """Parse an "HH:MM" string into clamped hours and minutes.

    Raises:
        ValidationError: If the string is not of the form H:MM or HH:MM.
    """
    if not isinstance(value, str):
        raise ValidationError("time", f"must be a string, got {type(value).__name__}")
    match = _TIME_RE.match(value)
    if not match:
        raise ValidationError("time", f"expected HH:MM, got {value!r}")
    return {
        "hours": clamp_hours(match.group(1)),
        "minutes": clamp_minutes(match.group(2)),
    }


def normalize_repeat(value: Any) -> Repeat:
    """Convert a stored repeat value to a Repeat, defaulting to never."""
    if value is None or value == "":
        return Repeat.NEVER
    if isinstance(value, Repeat):
        return value
    try:
        return Repeat(str(value).lower())
    except ValueError:
        raise ValidationError(
            "repeat",
            f"must be one of {', '.join(r.value for r in Repeat)}, got {value!r}",
        ) from None


def normalize_sound(value: Any) -> str:
    """Convert a stored sound reference to a built-in tone id.

    Accepts a plain id or a dict with an "id" key. Unknown or missing
    references fall back to the default tone.
    """
    if isinstance(value, dict):
        value = value.get("id")
    if isinstance(value, str) and value in SOUND_CATALOG:
        return value
    return DEFAULT_SOUND


def validate_sound(value: Any) -> str:
    """Validate a built-in tone id supplied by the user."""
    if not isinstance(value, str) or value not in SOUND_CATALOG:
        raise ValidationError(
            "sound", f"must be one of {', '.join(SOUND_CATALOG)}, got {value!r}"
        )
    return value


def validate_alarm_id(alarm_id: Any) -> str:
    """Validate a full alarm ID (32 hex characters)."""
    if not isinstance(alarm_id, str):
        raise ValidationError(
            "alarm_id", f"must be a string, got {type(alarm_id).__name__}"
        )
    normalized = alarm_id.replace("-", "").lower()
    if len(normalized) != ALARM_ID_LENGTH:
        raise ValidationError("alarm_id", f"must be {ALARM_ID_LENGTH} hex characters")
    try:
        int(normalized, 16)
    except ValueError:
        raise ValidationError("alarm_id", "must be a valid hex string") from None
    return normalized


def validate_text(value: Any, field_name: str, max_length: int) -> str:
    """Validate a free-text field."""
    if not isinstance(value, str):
        raise ValidationError(
            field_name, f"must be a string, got {type(value).__name__}"
        )
    if len(value) > max_length:
        raise ValidationError(
            field_name, f"cannot exceed {max_length} characters (got {len(value)})"
        )
    return value


def validate_language(value: Any) -> str:
    """Validate a BCP 47 style language tag such as "en-IN"."""
    tag = validate_text(value, "language", MAX_LANGUAGE_LENGTH).strip()
    if not _LANGUAGE_RE.match(tag):
        raise ValidationError("language", f"invalid language tag {value!r}")
    return tag


def parse_seconds(value: Any, field_name: str) -> Optional[float]:
    """Parse an optional seconds value (trim window bounds)."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(field_name, "must be a number of seconds")
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        raise ValidationError(field_name, f"must be a number of seconds, got {value!r}") from None
    if not math.isfinite(seconds):
        raise ValidationError(field_name, "must be a finite number of seconds")
    return seconds
