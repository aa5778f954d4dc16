"""Data models for the Voice Alarm application.

This module defines immutable dataclasses representing the core entities:
PcmBuffer, AudioArtifact and Alarm, plus the explicit (de)serialization step
that turns stored dicts into fully populated Alarm records.

All alarm IDs are UUID7 hex strings (32 characters, no hyphens).

CRITICAL: This module must have NO Flask dependencies.
"""

from __future__ import annotations

from array import array
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from functools import cached_property
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple

from uuid6 import uuid7

# Longest artifact that may be attached to an alarm (seconds)
MAX_DURATION = 30.0

DEFAULT_LABEL = "Alarm"
DEFAULT_MESSAGE = "Wake up!"
DEFAULT_SOUND = "bell"
DEFAULT_LANGUAGE = "en-IN"
DEFAULT_MESSAGE_REPEAT = 1

MIN_MESSAGE_REPEAT = 1
MAX_MESSAGE_REPEAT = 5

# Voices offered for the spoken message
SUPPORTED_LANGUAGES = {
    "en-IN": "English (Indian)",
    "hi-IN": "Hindi",
    "en-US": "English (US)",
    "en-GB": "English (UK)",
    "en": "English",
}


class Repeat(Enum):
    """Repeat policies for an alarm."""

    NEVER = "never"
    DAILY = "daily"
    WEEKDAYS = "weekdays"
    WEEKENDS = "weekends"

    def allows(self, weekday: int) -> bool:
        """Check whether the policy allows firing on a weekday (Monday == 0)."""
        if self is Repeat.WEEKDAYS:
            return weekday < 5
        if self is Repeat.WEEKENDS:
            return weekday >= 5
        return True


@dataclass(frozen=True)
class PcmBuffer:
    """Multi-channel floating point PCM samples.

    Each channel is an independent ``array('d')`` copy of the samples it was
    built from, so buffers never alias each other.

    Attributes:
        channels: One sample sequence per channel, all the same length
        sample_rate: Frames per second
    """

    channels: Tuple[array, ...]
    sample_rate: int

    def __post_init__(self) -> None:
        copied = tuple(array("d", channel) for channel in self.channels)
        if not copied:
            raise ValueError("PCM buffer needs at least one channel")
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        if len({len(channel) for channel in copied}) > 1:
            raise ValueError("all channels must have the same length")
        object.__setattr__(self, "channels", copied)

    @property
    def channel_count(self) -> int:
        return len(self.channels)

    @property
    def frame_count(self) -> int:
        return len(self.channels[0])

    @property
    def duration(self) -> float:
        """Duration in seconds."""
        return self.frame_count / self.sample_rate

    @classmethod
    def from_interleaved(
        cls, samples: Sequence[float], channel_count: int, sample_rate: int
    ) -> "PcmBuffer":
        """Build a buffer from frame-major, channel-minor samples."""
        if channel_count <= 0:
            raise ValueError(f"channel_count must be positive, got {channel_count}")
        usable = len(samples) - len(samples) % channel_count
        return cls(
            tuple(samples[c:usable:channel_count] for c in range(channel_count)),
            sample_rate,
        )


@dataclass(frozen=True)
class AudioArtifact:
    """A finished audio payload attached to an alarm.

    Artifacts are never mutated; trimming again produces a new one.

    Attributes:
        pcm: Canonical samples after trimming
        original_duration: Duration of the untrimmed source (seconds)
        was_trimmed: True if the artifact is shorter than its source
    """

    pcm: PcmBuffer
    original_duration: float
    was_trimmed: bool

    mime_type = "audio/wav"

    @property
    def samples(self) -> Tuple[array, ...]:
        return self.pcm.channels

    @property
    def sample_rate(self) -> int:
        return self.pcm.sample_rate

    @property
    def duration(self) -> float:
        return self.pcm.duration

    def to_wav(self) -> bytes:
        """Encode the artifact as a 16-bit PCM WAV container."""
        return self._wav

    @cached_property
    def _wav(self) -> bytes:
        from .wav import encode_wav

        return encode_wav(self.pcm)

    def metadata(self) -> Dict[str, Any]:
        """Get the JSON-serializable description stored with the alarm."""
        return {
            "duration": round(self.duration, 6),
            "originalDuration": round(self.original_duration, 6),
            "wasTrimmed": self.was_trimmed,
            "sampleRate": self.sample_rate,
            "channels": self.pcm.channel_count,
        }


@dataclass(frozen=True)
class Alarm:
    """Represents an alarm in the system.

    Exactly one playback source is active: custom_audio when it is set,
    otherwise the built-in tone named by sound.

    Attributes:
        id: Unique identifier (UUID7 hex string), never changes
        hours: Trigger hour, 0-23
        minutes: Trigger minute, 0-59
        label: Notification title
        message: Text spoken (and shown) when the alarm fires
        sound: Built-in tone id
        repeat: Repeat policy
        language: Voice locale tag used for speech
        message_repeat: How many times the message is spoken, 1-5
        enabled: Whether the alarm is armed
        created_at: When the alarm was created
        custom_audio: Uploaded audio that replaces the built-in tone
    """

    id: str
    hours: int
    minutes: int
    label: str = DEFAULT_LABEL
    message: str = DEFAULT_MESSAGE
    sound: str = DEFAULT_SOUND
    repeat: Repeat = Repeat.NEVER
    language: str = DEFAULT_LANGUAGE
    message_repeat: int = DEFAULT_MESSAGE_REPEAT
    enabled: bool = True
    created_at: datetime = field(default_factory=datetime.now)
    custom_audio: Optional[AudioArtifact] = None

    @property
    def time_label(self) -> str:
        """Trigger time as HH:MM."""
        return f"{self.hours:02d}:{self.minutes:02d}"

    def with_changes(self, **changes: Any) -> "Alarm":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)


def new_alarm_id() -> str:
    """Generate a new alarm ID."""
    return uuid7().hex


def alarm_to_dict(alarm: Alarm) -> Dict[str, Any]:
    """Serialize an alarm to the stored (camelCase) representation."""
    return {
        "id": alarm.id,
        "hours": alarm.hours,
        "minutes": alarm.minutes,
        "label": alarm.label,
        "message": alarm.message,
        "sound": alarm.sound,
        "repeat": alarm.repeat.value,
        "language": alarm.language,
        "messageRepeat": alarm.message_repeat,
        "enabled": alarm.enabled,
        "createdAt": alarm.created_at.isoformat(),
        "customAudio": alarm.custom_audio.metadata() if alarm.custom_audio else None,
    }


def alarm_from_dict(
    data: Dict[str, Any], custom_audio: Optional[AudioArtifact] = None
) -> Alarm:
    """Build a fully populated Alarm from a stored dict.

    Missing optional fields get the documented defaults (label "Alarm",
    message "Wake up!", sound "bell", repeat never, language "en-IN",
    messageRepeat 1, enabled True). Out-of-range numbers are clamped.

    Args:
        data: Stored alarm dict
        custom_audio: Artifact loaded for this alarm, if any

    Returns:
        Alarm instance.

    Raises:
        ValidationError: If the id is missing or a field has the wrong type.
    """
    # Local import: validation depends on this module's constants
    from .validation import (
        ValidationError,
        clamp_hours,
        clamp_message_repeat,
        clamp_minutes,
        normalize_repeat,
        normalize_sound,
    )

    alarm_id = data.get("id")
    if not alarm_id or not isinstance(alarm_id, str):
        raise ValidationError("id", "stored alarm has no id")

    created_raw = data.get("createdAt")
    try:
        created_at = _parse_timestamp(created_raw) if created_raw else datetime.now()
    except (TypeError, ValueError):
        raise ValidationError("createdAt", f"invalid timestamp: {created_raw!r}") from None

    return Alarm(
        id=alarm_id,
        hours=clamp_hours(data.get("hours", 0)),
        minutes=clamp_minutes(data.get("minutes", 0)),
        label=_text(data.get("label"), DEFAULT_LABEL),
        message=_text(data.get("message"), DEFAULT_MESSAGE),
        sound=normalize_sound(data.get("sound")),
        repeat=normalize_repeat(data.get("repeat")),
        language=_text(data.get("language"), DEFAULT_LANGUAGE) or DEFAULT_LANGUAGE,
        message_repeat=clamp_message_repeat(data.get("messageRepeat", DEFAULT_MESSAGE_REPEAT)),
        enabled=bool(data.get("enabled", True)),
        created_at=created_at,
        custom_audio=custom_audio,
    )


def _parse_timestamp(value: Any) -> datetime:
    """Parse an ISO timestamp into naive local time.

    Accepts the trailing "Z" that JavaScript's toISOString() writes.
    """
    if not isinstance(value, str):
        raise TypeError(f"expected a string, got {type(value).__name__}")
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _text(value: Any, default: str) -> str:
    return default if value is None else str(value)


def sort_alarms(alarms: Iterable[Alarm]) -> list[Alarm]:
    """Sort alarms by trigger time, then creation time."""
    return sorted(alarms, key=lambda a: (a.hours, a.minutes, a.created_at))
