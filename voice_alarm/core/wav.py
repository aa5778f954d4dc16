"""WAV encoding for Voice Alarm.

Serializes a PcmBuffer into a canonical RIFF/WAVE container: PCM format 1,
16-bit, little-endian, a single 16-byte fmt chunk and one data chunk.

Header layout (byte offsets):
    0   "RIFF"
    4   36 + data length (u32)
    8   "WAVE"
    12  "fmt "
    16  16 (u32)
    20  1 = PCM (u16)
    22  channels (u16)
    24  sample rate (u32)
    28  byte rate = sample rate * block align (u32)
    32  block align = channels * 2 (u16)
    34  16 bits per sample (u16)
    36  "data"
    40  data length = frames * channels * 2 (u32)
    44  interleaved samples, frame-major, channel-minor
"""

from __future__ import annotations

import math
import struct
from typing import List

from .models import PcmBuffer

HEADER_SIZE = 44
PCM_FORMAT = 1
BITS_PER_SAMPLE = 16
BYTES_PER_SAMPLE = BITS_PER_SAMPLE // 8
INT16_SCALE = 32767

_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")


def quantize_sample(sample: float) -> int:
    """Convert a float sample to a signed 16-bit integer.

    The sample is clamped to [-1, 1] and scaled by 32767, rounding half away
    from zero. Non-finite samples become silence.
    """
    if not math.isfinite(sample):
        return 0
    scaled = max(-1.0, min(1.0, sample)) * INT16_SCALE
    return int(math.copysign(math.floor(abs(scaled) + 0.5), scaled))


def wav_header(channel_count: int, sample_rate: int, frame_count: int) -> bytes:
    """Build the 44-byte header for a 16-bit PCM WAV file.

    Raises:
        ValueError: If channel_count or sample_rate is not positive, or
            frame_count is negative.
    """
    if channel_count <= 0:
        raise ValueError(f"channel_count must be positive, got {channel_count}")
    if sample_rate <= 0:
        raise ValueError(f"sample_rate must be positive, got {sample_rate}")
    if frame_count < 0:
        raise ValueError(f"frame_count cannot be negative, got {frame_count}")

    block_align = channel_count * BYTES_PER_SAMPLE
    data_length = frame_count * block_align
    return _HEADER.pack(
        b"RIFF",
        36 + data_length,
        b"WAVE",
        b"fmt ",
        16,
        PCM_FORMAT,
        channel_count,
        sample_rate,
        sample_rate * block_align,
        block_align,
        BITS_PER_SAMPLE,
        b"data",
        data_length,
    )


def encode_wav(pcm: PcmBuffer) -> bytes:
    """Encode a PCM buffer as a 16-bit WAV container.

    Args:
        pcm: Samples to encode (floats, nominally in [-1.0, 1.0]).

    Returns:
        The complete WAV file as bytes.
    """
    header = wav_header(pcm.channel_count, pcm.sample_rate, pcm.frame_count)

    interleaved: List[int] = []
    for frame in zip(*pcm.channels):
        interleaved.extend(quantize_sample(s) for s in frame)

    return header + struct.pack(f"<{len(interleaved)}h", *interleaved)
