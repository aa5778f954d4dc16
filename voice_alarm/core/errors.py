"""Exception types for Voice Alarm.

Pipeline errors (UnsupportedFormatError, DecodeError, EmptyWindowError) are
raised synchronously to whoever started an upload or trim. PersistenceError is
raised to the caller of a mutating store operation. PlaybackError never leaves
the alarm dispatcher; it is logged there.

CRITICAL: This module must have NO Flask dependencies.
"""

from __future__ import annotations

__all__ = [
    "VoiceAlarmError",
    "UnsupportedFormatError",
    "DecodeError",
    "EmptyWindowError",
    "PersistenceError",
    "PlaybackError",
    "UnknownSoundError",
]


class VoiceAlarmError(Exception):
    """Base class for all Voice Alarm errors."""


class UnsupportedFormatError(VoiceAlarmError):
    """Input is not an accepted audio type, or is too large to decode."""


class DecodeError(VoiceAlarmError):
    """Audio data is corrupt, truncated or uses an unsupported codec."""


class EmptyWindowError(VoiceAlarmError):
    """A trim window has zero length after clamping."""


class PersistenceError(VoiceAlarmError):
    """Reading or writing the alarm collection failed."""


class PlaybackError(VoiceAlarmError):
    """Audio playback could not be started."""


class UnknownSoundError(VoiceAlarmError, KeyError):
    """No built-in tone exists with the requested id."""

    def __init__(self, sound_id: str) -> None:
        self.sound_id = sound_id
        super().__init__(sound_id)

    def __str__(self) -> str:
        return f"Unknown sound: {self.sound_id}"
