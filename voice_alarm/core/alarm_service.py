"""Alarm operations for Voice Alarm.

This module provides the create/edit/delete/toggle operations used by the
CLI and the web API, plus attaching uploaded audio to an alarm. Every
mutation is a read-modify-write under the store lock, so the scheduler never
sees a half-applied change.

CRITICAL: This module must have NO Flask dependencies.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from .models import DEFAULT_LANGUAGE, MAX_DURATION, Alarm, new_alarm_id
from .pipeline import prepare_artifact, retrim_artifact
from .scheduler import next_trigger
from .store import AlarmStore
from .validation import (
    MAX_LABEL_LENGTH,
    MAX_MESSAGE_LENGTH,
    ValidationError,
    clamp_hours,
    clamp_message_repeat,
    clamp_minutes,
    normalize_repeat,
    validate_language,
    validate_sound,
    validate_text,
)

logger = logging.getLogger(__name__)

__all__ = [
    "AlarmService",
    "EDITABLE_FIELDS",
    "confirmation_phrase",
    "describe_alarm",
    "normalize_alarm_fields",
]

EDITABLE_FIELDS = (
    "hours",
    "minutes",
    "label",
    "message",
    "sound",
    "repeat",
    "language",
    "message_repeat",
    "enabled",
)


def normalize_alarm_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Clamp and validate user-supplied alarm fields.

    Unknown keys are rejected; None values are ignored.

    Raises:
        ValidationError: If a field is unknown or invalid.
    """
    result: Dict[str, Any] = {}
    for key, value in fields.items():
        if value is None:
            continue
        if key not in EDITABLE_FIELDS:
            raise ValidationError(key, "is not an editable alarm field")
        if key == "hours":
            result[key] = clamp_hours(value)
        elif key == "minutes":
            result[key] = clamp_minutes(value)
        elif key == "label":
            result[key] = validate_text(value, "label", MAX_LABEL_LENGTH)
        elif key == "message":
            result[key] = validate_text(value, "message", MAX_MESSAGE_LENGTH)
        elif key == "sound":
            result[key] = validate_sound(value)
        elif key == "repeat":
            result[key] = normalize_repeat(value)
        elif key == "language":
            result[key] = validate_language(value)
        elif key == "message_repeat":
            result[key] = clamp_message_repeat(value)
        elif key == "enabled":
            if not isinstance(value, bool):
                raise ValidationError("enabled", f"must be a boolean, got {type(value).__name__}")
            result[key] = value
    return result


class AlarmService:
    """Alarm CRUD on top of an AlarmStore.

    Alarm IDs may be given as unique prefixes of the full ID.
    """

    def __init__(
        self,
        store: AlarmStore,
        max_duration: float = MAX_DURATION,
        max_upload_bytes: Optional[int] = None,
        default_language: str = DEFAULT_LANGUAGE,
    ) -> None:
        self.store = store
        self.max_duration = max_duration
        self.max_upload_bytes = max_upload_bytes
        self.default_language = default_language

    def get_all_alarms(self) -> List[Alarm]:
        """Get every alarm in stored order."""
        return self.store.load_all()

    def resolve_alarm_id(self, id_or_prefix: str) -> Optional[str]:
        """Expand an ID prefix to a full alarm ID.

        Returns:
            The full ID, or None if nothing matches.

        Raises:
            ValidationError: If the prefix is empty or matches several alarms.
        """
        prefix = (id_or_prefix or "").replace("-", "").lower()
        if not prefix:
            raise ValidationError("alarm_id", "cannot be empty")
        candidates = [a.id for a in self.store.load_all() if a.id.startswith(prefix)]
        if len(candidates) > 1:
            raise ValidationError("alarm_id", f"prefix '{id_or_prefix}' is ambiguous")
        return candidates[0] if candidates else None

    def get_alarm(self, id_or_prefix: str) -> Optional[Alarm]:
        """Get an alarm by ID or ID prefix."""
        alarm_id = self.resolve_alarm_id(id_or_prefix)
        if alarm_id is None:
            return None
        return self.store.get(alarm_id)

    def create_alarm(self, **fields: Any) -> Alarm:
        """Create an enabled alarm.

        Args:
            **fields: Any of EDITABLE_FIELDS; hours and minutes default to 9:00.

        Raises:
            ValidationError: If a field is invalid.
            PersistenceError: If the alarm can't be saved.
        """
        values: Dict[str, Any] = {"hours": 9, "minutes": 0, "language": self.default_language}
        values.update(normalize_alarm_fields(fields))
        values["enabled"] = True
        alarm = Alarm(id=new_alarm_id(), created_at=datetime.now(), **values)

        with self.store.lock:
            alarms = self.store.load_all()
            alarms.append(alarm)
            self.store.save_all(alarms)
        logger.info(f"Created alarm {alarm.id} for {alarm.time_label}")
        return alarm

    def update_alarm(self, id_or_prefix: str, **fields: Any) -> Optional[Alarm]:
        """Apply changes to an alarm.

        Returns:
            The updated alarm, or None if it doesn't exist.
        """
        changes = normalize_alarm_fields(fields)
        return self._replace(id_or_prefix, lambda alarm: alarm.with_changes(**changes))

    def toggle_alarm(self, id_or_prefix: str) -> Optional[Alarm]:
        """Flip an alarm between armed and disarmed."""
        return self._replace(id_or_prefix, lambda alarm: alarm.with_changes(enabled=not alarm.enabled))

    def delete_alarm(self, id_or_prefix: str) -> bool:
        """Delete an alarm and release its audio.

        Returns:
            True if the alarm existed.
        """
        return self.delete_alarms([id_or_prefix]) == 1

    def delete_alarms(self, ids: Iterable[str]) -> int:
        """Delete several alarms.

        Returns:
            Number of alarms deleted.
        """
        with self.store.lock:
            targets = {alarm_id for alarm_id in map(self.resolve_alarm_id, ids) if alarm_id}
            if not targets:
                return 0
            alarms = self.store.load_all()
            remaining = [a for a in alarms if a.id not in targets]
            self.store.save_all(remaining)
        logger.info(f"Deleted {len(alarms) - len(remaining)} alarm(s)")
        return len(alarms) - len(remaining)

    def attach_audio(
        self,
        id_or_prefix: str,
        data: bytes,
        mime_type: Optional[str],
        start: Optional[float] = None,
        end: Optional[float] = None,
    ) -> Optional[Alarm]:
        """Decode, trim and attach uploaded audio to an alarm.

        The pipeline runs before the alarm is touched, so a failed upload
        leaves the previous audio in place.

        Returns:
            The updated alarm, or None if it doesn't exist.

        Raises:
            UnsupportedFormatError, DecodeError, EmptyWindowError: From the pipeline.
        """
        if self.get_alarm(id_or_prefix) is None:
            return None
        kwargs: Dict[str, Any] = {"max_duration": self.max_duration}
        if self.max_upload_bytes is not None:
            kwargs["max_bytes"] = self.max_upload_bytes
        artifact = prepare_artifact(data, mime_type, start, end, **kwargs)
        return self._replace(id_or_prefix, lambda alarm: alarm.with_changes(custom_audio=artifact))

    def retrim_audio(
        self, id_or_prefix: str, start: Optional[float], end: Optional[float]
    ) -> Optional[Alarm]:
        """Trim an alarm's attached audio again.

        Returns:
            The updated alarm, or None if it doesn't exist.

        Raises:
            ValidationError: If the alarm has no custom audio.
            EmptyWindowError: If the window is empty.
        """
        alarm = self.get_alarm(id_or_prefix)
        if alarm is None:
            return None
        if alarm.custom_audio is None:
            raise ValidationError("custom_audio", "alarm has no custom audio to trim")
        artifact = retrim_artifact(alarm.custom_audio, start, end, self.max_duration)
        return self._replace(alarm.id, lambda a: a.with_changes(custom_audio=artifact))

    def clear_audio(self, id_or_prefix: str) -> Optional[Alarm]:
        """Remove an alarm's custom audio, reverting to its built-in sound."""
        return self._replace(id_or_prefix, lambda alarm: alarm.with_changes(custom_audio=None))

    def _replace(self, id_or_prefix: str, change: Callable[[Alarm], Alarm]) -> Optional[Alarm]:
        with self.store.lock:
            alarm_id = self.resolve_alarm_id(id_or_prefix)
            if alarm_id is None:
                return None
            alarms = self.store.load_all()
            updated: Optional[Alarm] = None
            for i, alarm in enumerate(alarms):
                if alarm.id == alarm_id:
                    updated = change(alarm)
                    alarms[i] = updated
            if updated is None:
                return None
            self.store.save_all(alarms)
        return updated


def confirmation_phrase(alarm: Alarm, updated: bool = False) -> str:
    """Get the phrase announced after saving an alarm."""
    verb = "updated" if updated else "set"
    return f"Alarm {verb} for {alarm.time_label}"


def describe_alarm(alarm: Alarm, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Get a JSON-serializable view of an alarm for the CLI and web API."""
    upcoming = next_trigger(alarm, now or datetime.now())
    audio = alarm.custom_audio
    return {
        "id": alarm.id,
        "time": alarm.time_label,
        "hours": alarm.hours,
        "minutes": alarm.minutes,
        "label": alarm.label,
        "message": alarm.message,
        "sound": alarm.sound,
        "repeat": alarm.repeat.value,
        "language": alarm.language,
        "message_repeat": alarm.message_repeat,
        "enabled": alarm.enabled,
        "created_at": alarm.created_at.isoformat(timespec="seconds"),
        "next_trigger": upcoming.isoformat(timespec="seconds") if upcoming else None,
        "custom_audio": None if audio is None else {
            "duration": round(audio.duration, 3),
            "original_duration": round(audio.original_duration, 3),
            "was_trimmed": audio.was_trimmed,
            "sample_rate": audio.sample_rate,
            "channels": audio.pcm.channel_count,
        },
    }
