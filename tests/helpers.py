"""Shared helpers and test doubles for Voice Alarm tests."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Callable, List, Optional, Sequence, Tuple

from voice_alarm.core.models import Alarm, PcmBuffer, Repeat, new_alarm_id
from voice_alarm.core.wav import encode_wav

# 2024-01-03 is a Wednesday, 2024-01-02 a Tuesday, 2024-01-06 a Saturday
WEDNESDAY = datetime(2024, 1, 3)
TUESDAY = datetime(2024, 1, 2)
SATURDAY = datetime(2024, 1, 6)


def at(day: datetime, hour: int, minute: int, second: int = 0) -> datetime:
    """Get a time of day on the given date."""
    return day.replace(hour=hour, minute=minute, second=second, microsecond=0)


def make_alarm(
    hours: int = 9,
    minutes: int = 0,
    repeat: Repeat = Repeat.NEVER,
    **fields: Any,
) -> Alarm:
    """Build an alarm with a fresh ID."""
    return Alarm(id=new_alarm_id(), hours=hours, minutes=minutes, repeat=repeat, **fields)


def sine_pcm(
    seconds: float,
    sample_rate: int = 8000,
    channels: int = 1,
    frequency: float = 440.0,
    amplitude: float = 0.5,
) -> PcmBuffer:
    """Build a sine wave buffer, one identical copy per channel."""
    frames = int(seconds * sample_rate)
    wave = [amplitude * math.sin(2 * math.pi * frequency * n / sample_rate) for n in range(frames)]
    return PcmBuffer(tuple(wave for _ in range(channels)), sample_rate)


def make_wav(seconds: float, sample_rate: int = 8000, channels: int = 1) -> bytes:
    """Build a 16-bit WAV file containing a sine wave."""
    return encode_wav(sine_pcm(seconds, sample_rate, channels))


class FakeTimer:
    """Stands in for threading.Timer; fire() runs the callback synchronously."""

    created: List["FakeTimer"] = []

    def __init__(self, interval: float, function: Callable[..., Any], args: Sequence[Any] = ()) -> None:
        self.interval = interval
        self.function = function
        self.args = tuple(args)
        self.daemon = False
        self.started = False
        self.cancelled = False
        FakeTimer.created.append(self)

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.function(*self.args)


class FakeSpeaker:
    def __init__(self, fail: bool = False) -> None:
        self.spoken: List[Tuple[str, float, float, str]] = []
        self.stopped = 0
        self.fail = fail

    def speak(self, text: str, rate: float, pitch: float, language: str) -> None:
        if self.fail:
            raise OSError("espeak-ng not installed")
        self.spoken.append((text, rate, pitch, language))

    def stop(self) -> None:
        self.stopped += 1


class FakePlayer:
    def __init__(self, fail: bool = False) -> None:
        self.tones: List[str] = []
        self.artifacts: List[Tuple[bytes, str]] = []
        self.stopped = 0
        self.fail = fail

    def play_tone(self, sound_id: str) -> None:
        if self.fail:
            raise RuntimeError("no audio device")
        self.tones.append(sound_id)

    def play_artifact(self, data: bytes, mime_type: str) -> None:
        if self.fail:
            raise RuntimeError("no audio device")
        self.artifacts.append((data, mime_type))

    def stop(self) -> None:
        self.stopped += 1


class FakeNotifier:
    def __init__(self) -> None:
        self.shown: List[Tuple[str, str]] = []

    def notify(self, title: str, body: str) -> bool:
        self.shown.append((title, body))
        return True


def fire_all(timers: Optional[Sequence[FakeTimer]] = None) -> None:
    """Fire every fake timer created so far, in creation order."""
    for timer in list(timers if timers is not None else FakeTimer.created):
        timer.fire()
