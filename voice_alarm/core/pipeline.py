"""Audio import pipeline: decode, trim, package.

The pipeline is single-shot and blocking. Each stage gets its own copy of
the samples, so callers can run it on a worker thread without sharing state.
Errors are raised to the caller before anything is attached to an alarm.
"""

from __future__ import annotations

import logging
from typing import Optional

from .decoder import DEFAULT_MAX_UPLOAD_BYTES, decode_audio
from .models import MAX_DURATION, AudioArtifact
from .trimmer import trim

logger = logging.getLogger(__name__)


def prepare_artifact(
    data: bytes,
    mime_type: Optional[str],
    start: Optional[float] = None,
    end: Optional[float] = None,
    max_duration: float = MAX_DURATION,
    max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    target_rate: Optional[int] = None,
) -> AudioArtifact:
    """Turn an uploaded audio file into an alarm artifact.

    Without a window the first max_duration seconds are kept.

    Args:
        data: Uploaded file contents.
        mime_type: Declared (or sniffed) MIME type.
        start: Window start in seconds.
        end: Window end in seconds.
        max_duration: Longest artifact allowed (seconds).
        max_bytes: Largest upload accepted.
        target_rate: Resample to this rate, if given.

    Returns:
        A new AudioArtifact.

    Raises:
        UnsupportedFormatError: Not accepted audio, or too large.
        DecodeError: Corrupt or undecodable audio.
        EmptyWindowError: The window is empty after clamping.
    """
    # Work on a private copy of the caller's buffer
    pcm = decode_audio(bytes(data), mime_type, max_bytes=max_bytes)
    result = trim(pcm, start, end, target_rate=target_rate, max_duration=max_duration)

    logger.info(
        f"Prepared artifact: {result.duration:.2f}s of {result.source_duration:.2f}s "
        f"(trimmed: {result.was_trimmed})"
    )
    return AudioArtifact(
        pcm=result.pcm,
        original_duration=result.source_duration,
        was_trimmed=result.was_trimmed,
    )


def retrim_artifact(
    artifact: AudioArtifact,
    start: Optional[float],
    end: Optional[float],
    max_duration: float = MAX_DURATION,
) -> AudioArtifact:
    """Trim an existing artifact again, producing a new one.

    The original duration carries over from the artifact, so was_trimmed
    still compares against the file the user first uploaded.

    Raises:
        EmptyWindowError: The window is empty after clamping.
    """
    result = trim(artifact.pcm, start, end, max_duration=max_duration)
    return AudioArtifact(
        pcm=result.pcm,
        original_duration=artifact.original_duration,
        was_trimmed=artifact.original_duration > result.end - result.start,
    )


def format_duration(seconds: float) -> str:
    """Format seconds as M:SS."""
    total = int(max(0.0, seconds))
    return f"{total // 60}:{total % 60:02d}"
