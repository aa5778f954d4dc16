"""Trimming and resampling of decoded audio.

A trim takes a half-open window [start, end) in seconds and copies exactly
floor((end - start) * sample_rate) frames per channel into a new buffer.
Window bounds are clamped to the source before anything else is checked, so
seconds typed into a form never fail on rounding.
"""

from __future__ import annotations

import math
from array import array
from dataclasses import dataclass
from typing import Optional, Tuple

from .errors import EmptyWindowError
from .models import MAX_DURATION, PcmBuffer

# Absorbs float error in seconds * rate products (0.7 - 0.4 != 0.3)
_FRAME_EPSILON = 1e-9


@dataclass(frozen=True)
class TrimResult:
    """Outcome of a trim.

    Attributes:
        pcm: The trimmed (and possibly resampled) samples
        source_duration: Duration of the input (seconds)
        start: Window start after clamping (seconds)
        end: Window end after clamping (seconds)
        was_trimmed: True if the window is shorter than the source
    """

    pcm: PcmBuffer
    source_duration: float
    start: float
    end: float
    was_trimmed: bool

    @property
    def duration(self) -> float:
        return self.pcm.duration


def seconds_to_frames(seconds: float, sample_rate: int) -> int:
    """Convert seconds to a whole number of frames, rounding down."""
    return int(math.floor(seconds * sample_rate + _FRAME_EPSILON))


def clamp_window(
    source_duration: float,
    start: Optional[float] = None,
    end: Optional[float] = None,
    max_duration: Optional[float] = MAX_DURATION,
) -> Tuple[float, float]:
    """Resolve a requested window against a source.

    Missing bounds default to [0, min(source_duration, max_duration)).
    Bounds outside the source are clamped; a window longer than
    max_duration is shortened from the end.

    Returns:
        (start, end) in seconds.

    Raises:
        EmptyWindowError: If the clamped window has no length.
    """
    start = 0.0 if start is None else max(0.0, float(start))
    if end is None:
        end = source_duration if max_duration is None else start + max_duration
    end = min(float(end), source_duration)

    if end <= start:
        raise EmptyWindowError(
            f"Trim window [{start:.3f}, {end:.3f}) is empty "
            f"(source is {source_duration:.3f}s)"
        )
    if max_duration is not None and end - start > max_duration:
        end = start + max_duration
    return start, end


def resample(pcm: PcmBuffer, target_rate: int) -> PcmBuffer:
    """Convert a buffer to another sample rate by linear interpolation.

    Output length is floor(frames * target_rate / sample_rate).
    """
    if target_rate <= 0:
        raise ValueError(f"target_rate must be positive, got {target_rate}")
    if target_rate == pcm.sample_rate:
        return PcmBuffer(pcm.channels, pcm.sample_rate)

    frames = pcm.frame_count
    out_frames = frames * target_rate // pcm.sample_rate
    step = pcm.sample_rate / target_rate
    last = frames - 1

    channels = []
    for source in pcm.channels:
        out = array("d", bytes(8 * out_frames))
        for n in range(out_frames):
            position = n * step
            i = int(position)
            frac = position - i
            if i >= last:
                out[n] = source[last]
            else:
                out[n] = source[i] + (source[i + 1] - source[i]) * frac
        channels.append(out)
    return PcmBuffer(tuple(channels), target_rate)


def trim(
    pcm: PcmBuffer,
    start: Optional[float] = None,
    end: Optional[float] = None,
    target_rate: Optional[int] = None,
    max_duration: Optional[float] = MAX_DURATION,
) -> TrimResult:
    """Cut a window out of a PCM buffer.

    Args:
        pcm: Source samples (left untouched).
        start: Window start in seconds (default 0).
        end: Window end in seconds (default start + max_duration, capped at the source).
        target_rate: Resample the result to this rate, if given.
        max_duration: Longest window allowed, or None for no limit.

    Returns:
        TrimResult with a new, independently owned buffer.

    Raises:
        EmptyWindowError: If the window is empty after clamping.
    """
    source_duration = pcm.duration
    start, end = clamp_window(source_duration, start, end, max_duration)

    first = seconds_to_frames(start, pcm.sample_rate)
    count = min(seconds_to_frames(end - start, pcm.sample_rate), pcm.frame_count - first)
    if count <= 0:
        raise EmptyWindowError(
            f"Trim window [{start:.3f}, {end:.3f}) is shorter than one frame"
        )

    trimmed = PcmBuffer(
        tuple(channel[first:first + count] for channel in pcm.channels),
        pcm.sample_rate,
    )
    if target_rate is not None and target_rate != pcm.sample_rate:
        trimmed = resample(trimmed, target_rate)

    return TrimResult(
        pcm=trimmed,
        source_duration=source_duration,
        start=start,
        end=end,
        was_trimmed=source_duration > end - start,
    )
