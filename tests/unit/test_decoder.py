"""Unit tests for audio decoding.

Tests the native WAV parser, input checks and MIME sniffing. FFmpeg
decoding is exercised only when ffmpeg is installed.
"""

from __future__ import annotations

import shutil
import struct
import subprocess
from pathlib import Path

import pytest

from voice_alarm.core.decoder import (
    check_audio_input,
    decode_audio,
    decode_wav,
    normalize_mime_type,
    sniff_mime_type,
)
from voice_alarm.core.errors import DecodeError, UnsupportedFormatError
from voice_alarm.core.models import PcmBuffer
from voice_alarm.core.wav import encode_wav

from tests.helpers import make_wav


def _wav_with_fmt(tag: int, channels: int, rate: int, bits: int, payload: bytes) -> bytes:
    block_align = channels * bits // 8
    fmt = struct.pack("<HHIIHH", tag, channels, rate, rate * block_align, block_align, bits)
    body = b"WAVE" + b"fmt " + struct.pack("<I", len(fmt)) + fmt
    body += b"data" + struct.pack("<I", len(payload)) + payload
    return b"RIFF" + struct.pack("<I", len(body)) + body


@pytest.mark.unit
class TestDecodeWav:
    """Test decode_wav()."""

    def test_round_trip_within_one_lsb(self) -> None:
        """Test encode then decode keeps shape and samples within 1 LSB."""
        pcm = PcmBuffer(([0.0, 0.25, -0.75, 0.999], [0.1, -0.1, 0.5, -1.0]), 11025)

        decoded = decode_wav(encode_wav(pcm))

        assert decoded.sample_rate == 11025
        assert decoded.channel_count == 2
        assert decoded.frame_count == 4
        for original, restored in zip(pcm.channels, decoded.channels):
            for a, b in zip(original, restored):
                assert abs(a - b) <= 1 / 32767

    def test_reencoding_is_lossless(self) -> None:
        """Test decoding a 16-bit file and encoding it again gives identical bytes."""
        data = make_wav(0.1, channels=2)
        assert encode_wav(decode_wav(data)) == data

    def test_8_bit_unsigned(self) -> None:
        data = _wav_with_fmt(1, 1, 8000, 8, bytes([128, 255, 0]))
        decoded = decode_wav(data)
        assert list(decoded.channels[0]) == [0.0, 127 / 128, -1.0]

    def test_32_bit_float(self) -> None:
        data = _wav_with_fmt(3, 1, 8000, 32, struct.pack("<2f", 0.25, -0.5))
        assert list(decode_wav(data).channels[0]) == [0.25, -0.5]

    def test_skips_unknown_chunks(self) -> None:
        """Test LIST and other chunks before the data chunk are ignored."""
        wav = make_wav(0.01)
        extra = b"LIST" + struct.pack("<I", 3) + b"abc" + b"\x00"
        patched = wav[:36] + extra + wav[36:]
        patched = patched[:4] + struct.pack("<I", len(patched) - 8) + patched[8:]

        assert decode_wav(patched).frame_count == decode_wav(wav).frame_count

    def test_truncated_data_chunk(self) -> None:
        with pytest.raises(DecodeError, match="Truncated"):
            decode_wav(make_wav(0.1)[:-10])

    def test_missing_signature(self) -> None:
        with pytest.raises(DecodeError, match="Malformed"):
            decode_wav(b"RIFX" + b"\x00" * 40)

    def test_too_short(self) -> None:
        with pytest.raises(DecodeError):
            decode_wav(b"RIFF")

    def test_no_frames(self) -> None:
        with pytest.raises(DecodeError):
            decode_wav(_wav_with_fmt(1, 1, 8000, 16, b""))

    def test_inconsistent_block_align(self) -> None:
        fmt = struct.pack("<HHIIHH", 1, 2, 8000, 32000, 3, 16)
        body = b"WAVEfmt " + struct.pack("<I", 16) + fmt + b"data" + struct.pack("<I", 4) + b"\x00" * 4
        with pytest.raises(DecodeError, match="block alignment"):
            decode_wav(b"RIFF" + struct.pack("<I", len(body)) + body)


@pytest.mark.unit
class TestCheckAudioInput:
    """Test check_audio_input()."""

    @pytest.mark.parametrize(
        "mime_type,container",
        [
            ("audio/mpeg", "mp3"),
            ("audio/wav", "wav"),
            ("audio/x-wav", "wav"),
            ("audio/ogg; codecs=opus", "ogg"),
            ("audio/mp4", "m4a"),
            ("audio/x-m4a", "m4a"),
            ("AUDIO/WAV", "wav"),
        ],
    )
    def test_accepted_types(self, mime_type: str, container: str) -> None:
        assert check_audio_input(b"x", mime_type) == container

    @pytest.mark.parametrize("mime_type", ["image/png", "text/plain", "video/mp4", None, ""])
    def test_rejects_non_audio(self, mime_type: str) -> None:
        with pytest.raises(UnsupportedFormatError):
            check_audio_input(b"x", mime_type)

    def test_rejects_oversized_input(self) -> None:
        with pytest.raises(UnsupportedFormatError, match="too large"):
            check_audio_input(b"x" * 11, "audio/wav", max_bytes=10)

    def test_empty_input(self) -> None:
        with pytest.raises(DecodeError):
            check_audio_input(b"", "audio/wav")

    def test_non_audio_never_reaches_decoder(self) -> None:
        """Test a PNG is refused before any decoding."""
        with pytest.raises(UnsupportedFormatError):
            decode_audio(b"\x89PNG\r\n\x1a\n" + b"\x00" * 100, "image/png")


@pytest.mark.unit
class TestMimeTypes:
    """Test MIME normalization and sniffing."""

    def test_normalize_strips_parameters(self) -> None:
        assert normalize_mime_type(" Audio/OGG;codecs=opus ") == "audio/ogg"
        assert normalize_mime_type(None) == ""

    def test_sniff_wav(self) -> None:
        assert sniff_mime_type(make_wav(0.01)) == "audio/wav"

    def test_sniff_magic_bytes(self) -> None:
        assert sniff_mime_type(b"OggS" + b"\x00" * 20) == "audio/ogg"
        assert sniff_mime_type(b"ID3\x03" + b"\x00" * 20) == "audio/mpeg"
        assert sniff_mime_type(b"\x00\x00\x00\x20ftypM4A ") == "audio/mp4"

    def test_sniff_falls_back_to_extension(self) -> None:
        assert sniff_mime_type(b"\x00" * 16, "song.M4A") == "audio/mp4"

    def test_sniff_unknown(self) -> None:
        assert sniff_mime_type(b"hello world!", "notes.txt") is None


@pytest.mark.integration
@pytest.mark.skipif(shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None,
                    reason="ffmpeg not installed")
class TestFfmpegDecoding:
    """Test decoding compressed audio through FFmpeg."""

    def test_decodes_ogg(self, tmp_path: Path) -> None:
        src = tmp_path / "tone.wav"
        src.write_bytes(make_wav(1.0, sample_rate=22050))
        out = tmp_path / "tone.ogg"
        subprocess.run(
            ["ffmpeg", "-v", "error", "-i", str(src), "-c:a", "libvorbis", str(out)],
            check=True,
        )

        pcm = decode_audio(out.read_bytes(), "audio/ogg")

        assert pcm.sample_rate == 22050
        assert pcm.channel_count == 1
        assert abs(pcm.duration - 1.0) < 0.1

    def test_garbage_raises_decode_error(self) -> None:
        with pytest.raises(DecodeError):
            decode_audio(b"\x00" * 1024, "audio/mpeg")
