"""Unit tests for WAV encoding.

Tests the 44-byte header layout, sample quantization and interleaving.
"""

from __future__ import annotations

import struct

import pytest

from voice_alarm.core.models import PcmBuffer
from voice_alarm.core.wav import HEADER_SIZE, encode_wav, quantize_sample, wav_header


@pytest.mark.unit
class TestWavHeader:
    """Test wav_header()."""

    def test_two_frame_mono_file(self) -> None:
        """Test the canonical 1 channel, 2 frame, 8000 Hz example."""
        data = encode_wav(PcmBuffer(([0.5, -0.5],), 8000))

        assert len(data) == 48
        assert data[0:4] == b"RIFF"
        assert struct.unpack_from("<I", data, 4)[0] == 40
        assert data[8:16] == b"WAVEfmt "
        assert struct.unpack_from("<IHHIIHH", data, 16) == (16, 1, 1, 8000, 16000, 2, 16)
        assert data[36:40] == b"data"
        assert struct.unpack_from("<I", data, 40)[0] == 4
        assert struct.unpack_from("<hh", data, 44) == (16384, -16384)

    def test_stereo_byte_rate_and_block_align(self) -> None:
        """Test derived fields for stereo 44.1 kHz."""
        header = wav_header(2, 44100, 10)

        assert len(header) == HEADER_SIZE
        _, _, channels, rate, byte_rate, block_align, bits = struct.unpack_from("<IHHIIHH", header, 16)
        assert (channels, rate, bits) == (2, 44100, 16)
        assert block_align == 4
        assert byte_rate == 44100 * 4
        assert struct.unpack_from("<I", header, 40)[0] == 40

    def test_zero_frames(self) -> None:
        """Test an empty buffer still gets a valid header."""
        header = wav_header(1, 8000, 0)
        assert struct.unpack_from("<I", header, 4)[0] == 36
        assert struct.unpack_from("<I", header, 40)[0] == 0

    @pytest.mark.parametrize("channels,rate,frames", [(0, 8000, 1), (1, 0, 1), (1, 8000, -1)])
    def test_rejects_invalid_shape(self, channels: int, rate: int, frames: int) -> None:
        """Test invalid shapes raise ValueError."""
        with pytest.raises(ValueError):
            wav_header(channels, rate, frames)


@pytest.mark.unit
class TestQuantizeSample:
    """Test quantize_sample()."""

    def test_full_scale(self) -> None:
        assert quantize_sample(1.0) == 32767
        assert quantize_sample(-1.0) == -32767

    def test_clamps_out_of_range(self) -> None:
        assert quantize_sample(1.5) == 32767
        assert quantize_sample(-7.0) == -32767

    def test_non_finite_becomes_silence(self) -> None:
        assert quantize_sample(float("nan")) == 0
        assert quantize_sample(float("inf")) == 0

    def test_rounds_half_away_from_zero(self) -> None:
        assert quantize_sample(0.5) == 16384
        assert quantize_sample(-0.5) == -16384


@pytest.mark.unit
class TestEncodeWav:
    """Test encode_wav()."""

    def test_interleaves_frame_major(self) -> None:
        """Test samples are written frame by frame, left then right."""
        pcm = PcmBuffer(([1.0, 0.0], [-1.0, 0.5]), 8000)
        data = encode_wav(pcm)

        assert struct.unpack_from("<4h", data, HEADER_SIZE) == (32767, -32767, 0, 16384)

    def test_length_matches_header(self) -> None:
        pcm = PcmBuffer(([0.1] * 100, [0.2] * 100, [0.3] * 100), 22050)
        data = encode_wav(pcm)

        data_length = struct.unpack_from("<I", data, 40)[0]
        assert data_length == 100 * 3 * 2
        assert len(data) == HEADER_SIZE + data_length
