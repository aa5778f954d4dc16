"""Audio decoding for Voice Alarm.

This module turns an uploaded byte buffer into a PcmBuffer.
WAV files are parsed directly; every other accepted container (MP3, OGG,
M4A) is decoded with FFmpeg/FFprobe.

The MIME type and size are checked before any decode work starts, so
non-audio input never reaches FFmpeg.
"""

from __future__ import annotations

import json
import logging
import shutil
import struct
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .errors import DecodeError, UnsupportedFormatError
from .models import PcmBuffer
from .wav import INT16_SCALE

logger = logging.getLogger(__name__)

# Largest upload accepted before decoding (bytes)
DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024

# Accepted MIME types and the container they map to
ACCEPTED_MIME_TYPES: Dict[str, str] = {
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/wave": "wav",
    "audio/vnd.wave": "wav",
    "audio/ogg": "ogg",
    "audio/mp4": "m4a",
    "audio/x-m4a": "m4a",
    "audio/m4a": "m4a",
    "audio/aac": "m4a",
}

_EXTENSION_MIME_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "ogg": "audio/ogg",
    "oga": "audio/ogg",
    "m4a": "audio/mp4",
    "mp4": "audio/mp4",
    "aac": "audio/aac",
}

# WAVE format tags
_WAVE_FORMAT_PCM = 0x0001
_WAVE_FORMAT_IEEE_FLOAT = 0x0003
_WAVE_FORMAT_EXTENSIBLE = 0xFFFE

FFMPEG_TIMEOUT = 60


class UnsupportedWavEncoding(DecodeError):
    """A RIFF/WAVE file uses an encoding the native parser can't read."""


def normalize_mime_type(mime_type: Optional[str]) -> str:
    """Lowercase a MIME type and strip parameters such as ';codecs=opus'."""
    if not mime_type:
        return ""
    return mime_type.split(";", 1)[0].strip().lower()


def sniff_mime_type(data: bytes, filename: Optional[str] = None) -> Optional[str]:
    """Guess the MIME type of an audio buffer.

    Looks at magic bytes first and falls back to the filename extension.

    Args:
        data: The file contents.
        filename: Original filename, if known.

    Returns:
        A MIME type string, or None if the data isn't recognizable audio.
    """
    head = data[:12]
    if head[:4] == b"RIFF" and head[8:12] == b"WAVE":
        return "audio/wav"
    if head[:4] == b"OggS":
        return "audio/ogg"
    if head[4:8] == b"ftyp":
        return "audio/mp4"
    if head[:3] == b"ID3" or (len(head) >= 2 and head[0] == 0xFF and head[1] & 0xE0 == 0xE0):
        return "audio/mpeg"

    if filename and "." in filename:
        ext = filename.rsplit(".", 1)[-1].lower()
        return _EXTENSION_MIME_TYPES.get(ext)
    return None


def check_audio_input(
    data: bytes, mime_type: Optional[str], max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
) -> str:
    """Check an upload before decoding it.

    Args:
        data: The file contents.
        mime_type: Declared MIME type.
        max_bytes: Largest accepted buffer.

    Returns:
        The container name ("wav", "mp3", "ogg" or "m4a").

    Raises:
        UnsupportedFormatError: If the type isn't accepted audio or the
            buffer is larger than max_bytes.
        DecodeError: If the buffer is empty.
    """
    container = ACCEPTED_MIME_TYPES.get(normalize_mime_type(mime_type))
    if container is None:
        raise UnsupportedFormatError(
            f"Unsupported audio type: {mime_type or '(none)'}. "
            "Please upload an audio file (MP3, WAV, OGG, M4A)"
        )
    if len(data) > max_bytes:
        raise UnsupportedFormatError(
            f"Audio file is too large ({len(data)} bytes, limit {max_bytes})"
        )
    if not data:
        raise DecodeError("Audio file is empty")
    return container


def decode_audio(
    data: bytes, mime_type: Optional[str], max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
) -> PcmBuffer:
    """Decode an audio buffer to PCM.

    Args:
        data: The file contents.
        mime_type: Declared MIME type.
        max_bytes: Largest accepted buffer.

    Returns:
        The decoded samples.

    Raises:
        UnsupportedFormatError: If the input is not accepted audio.
        DecodeError: If the audio is corrupt, truncated or can't be decoded.
    """
    container = check_audio_input(data, mime_type, max_bytes)
    if container == "wav" and data[:4] == b"RIFF":
        try:
            return decode_wav(data)
        except UnsupportedWavEncoding as e:
            # Compressed codecs in a RIFF wrapper (e.g. ADPCM) go through FFmpeg
            logger.info(f"Falling back to ffmpeg: {e}")
    return decode_with_ffmpeg(data, container)


def _read_chunks(data: bytes) -> Dict[bytes, bytes]:
    """Split a RIFF/WAVE file into its chunks."""
    if len(data) < 12:
        raise DecodeError("Truncated WAV file: missing RIFF header")
    riff, _, wave = struct.unpack_from("<4sI4s", data, 0)
    if riff != b"RIFF" or wave != b"WAVE":
        raise DecodeError("Malformed WAV file: missing RIFF/WAVE signature")

    chunks: Dict[bytes, bytes] = {}
    offset = 12
    while offset + 8 <= len(data):
        chunk_id, size = struct.unpack_from("<4sI", data, offset)
        offset += 8
        end = offset + size
        if chunk_id == b"data" and size == 0xFFFFFFFF:
            # Streaming writers leave the size unset
            end = len(data)
        if end > len(data):
            raise DecodeError(
                f"Truncated WAV file: {chunk_id.decode('latin-1')!r} chunk "
                f"needs {size} bytes, {len(data) - offset} available"
            )
        chunks.setdefault(chunk_id, data[offset:end])
        offset = end + (size & 1)
    return chunks


def _parse_fmt(fmt: bytes) -> Tuple[int, int, int, int]:
    """Get (format tag, channels, sample rate, bits per sample) from a fmt chunk."""
    if len(fmt) < 16:
        raise DecodeError("Malformed WAV file: fmt chunk too short")
    tag, channels, sample_rate, _, block_align, bits = struct.unpack_from("<HHIIHH", fmt, 0)
    if tag == _WAVE_FORMAT_EXTENSIBLE:
        if len(fmt) < 26:
            raise DecodeError("Malformed WAV file: extensible fmt chunk too short")
        # First two bytes of the sub-format GUID hold the real format tag
        (tag,) = struct.unpack_from("<H", fmt, 24)
    if channels == 0 or sample_rate == 0:
        raise DecodeError("Malformed WAV file: zero channels or sample rate")
    if block_align != channels * ((bits + 7) // 8):
        raise DecodeError("Malformed WAV file: inconsistent block alignment")
    return tag, channels, sample_rate, bits


def _to_floats(raw: bytes, tag: int, bits: int) -> List[float]:
    if tag == _WAVE_FORMAT_PCM and bits == 8:
        return [(b - 128) / 128.0 for b in raw]
    if tag == _WAVE_FORMAT_PCM and bits == 16:
        count = len(raw) // 2
        return [s / INT16_SCALE for s in struct.unpack(f"<{count}h", raw[: count * 2])]
    if tag == _WAVE_FORMAT_PCM and bits == 24:
        return [
            int.from_bytes(raw[i:i + 3], "little", signed=True) / 8388608.0
            for i in range(0, len(raw) - 2, 3)
        ]
    if tag == _WAVE_FORMAT_PCM and bits == 32:
        count = len(raw) // 4
        return [s / 2147483648.0 for s in struct.unpack(f"<{count}i", raw[: count * 4])]
    if tag == _WAVE_FORMAT_IEEE_FLOAT and bits == 32:
        count = len(raw) // 4
        return list(struct.unpack(f"<{count}f", raw[: count * 4]))
    if tag == _WAVE_FORMAT_IEEE_FLOAT and bits == 64:
        count = len(raw) // 8
        return list(struct.unpack(f"<{count}d", raw[: count * 8]))
    raise UnsupportedWavEncoding(f"Unsupported WAV encoding: format {tag:#06x}, {bits}-bit")


def decode_wav(data: bytes) -> PcmBuffer:
    """Decode an uncompressed WAV file.

    Supports 8/16/24/32-bit integer PCM and 32/64-bit float.

    Raises:
        DecodeError: If the file is truncated, malformed or uses another encoding.
    """
    chunks = _read_chunks(data)
    if b"fmt " not in chunks:
        raise DecodeError("Malformed WAV file: no fmt chunk")
    if b"data" not in chunks:
        raise DecodeError("Truncated WAV file: no data chunk")

    tag, channels, sample_rate, bits = _parse_fmt(chunks[b"fmt "])
    raw = chunks[b"data"]
    block_align = channels * ((bits + 7) // 8)
    raw = raw[: len(raw) - len(raw) % block_align]
    if not raw:
        raise DecodeError("WAV file contains no audio frames")

    samples = _to_floats(raw, tag, bits)
    return PcmBuffer.from_interleaved(samples, channels, sample_rate)


def _check_ffmpeg() -> bool:
    """Check if ffmpeg and ffprobe are available."""
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


def _probe_stream(path: Path) -> Tuple[int, int]:
    """Get (channels, sample rate) of the first audio stream."""
    try:
        result = subprocess.run(
            [
                "ffprobe",
                "-v", "error",
                "-select_streams", "a:0",
                "-show_entries", "stream=channels,sample_rate",
                "-of", "json",
                str(path),
            ],
            capture_output=True,
            text=True,
            timeout=FFMPEG_TIMEOUT,
        )
    except (subprocess.TimeoutExpired, subprocess.SubprocessError) as e:
        raise DecodeError(f"ffprobe failed: {e}") from e

    if result.returncode != 0:
        raise DecodeError(f"Could not read audio stream: {result.stderr.strip()[:200]}")
    try:
        streams = json.loads(result.stdout).get("streams") or []
        stream = streams[0]
        return int(stream["channels"]), int(stream["sample_rate"])
    except (ValueError, IndexError, KeyError, TypeError):
        raise DecodeError("File contains no decodable audio stream") from None


def decode_with_ffmpeg(data: bytes, container: str) -> PcmBuffer:
    """Decode a compressed audio buffer using FFmpeg.

    The buffer is written to a temporary file (MP4 containers may keep their
    index at the end, which rules out piping) and decoded to 16-bit PCM at
    its native rate and channel count.

    Raises:
        DecodeError: If FFmpeg is missing or the audio can't be decoded.
    """
    if not _check_ffmpeg():
        raise DecodeError("ffmpeg not found, cannot decode compressed audio")

    with tempfile.TemporaryDirectory(prefix="voice-alarm-") as tmp:
        path = Path(tmp) / f"upload.{container}"
        path.write_bytes(data)

        channels, sample_rate = _probe_stream(path)
        try:
            result = subprocess.run(
                [
                    "ffmpeg",
                    "-v", "error",
                    "-i", str(path),
                    "-map", "0:a:0",
                    "-ac", str(channels),
                    "-ar", str(sample_rate),
                    "-f", "s16le",
                    "-",  # Output to stdout
                ],
                capture_output=True,
                timeout=FFMPEG_TIMEOUT,
            )
        except subprocess.TimeoutExpired:
            raise DecodeError("ffmpeg timed out decoding audio") from None
        except subprocess.SubprocessError as e:
            raise DecodeError(f"ffmpeg error: {e}") from e

    if result.returncode != 0:
        raise DecodeError(f"ffmpeg failed: {result.stderr.decode(errors='replace')[:200]}")

    pcm_data = result.stdout
    frame_bytes = 2 * channels
    usable = len(pcm_data) - len(pcm_data) % frame_bytes
    if usable == 0:
        raise DecodeError("Decoded audio contains no frames")

    count = usable // 2
    samples = [s / INT16_SCALE for s in struct.unpack(f"<{count}h", pcm_data[:usable])]
    logger.info(f"Decoded {container} audio: {channels} channel(s) at {sample_rate} Hz")
    return PcmBuffer.from_interleaved(samples, channels, sample_rate)
