"""Unit tests for data models and validation."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from voice_alarm.core.models import (
    Alarm,
    AudioArtifact,
    PcmBuffer,
    Repeat,
    alarm_from_dict,
    alarm_to_dict,
    new_alarm_id,
    sort_alarms,
)
from voice_alarm.core.validation import (
    ValidationError,
    clamp_hours,
    clamp_message_repeat,
    normalize_repeat,
    normalize_sound,
    parse_seconds,
    parse_time,
    validate_alarm_id,
    validate_language,
    validate_sound,
    validate_text,
)

from tests.helpers import make_alarm, sine_pcm


@pytest.mark.unit
class TestPcmBuffer:
    """Test PcmBuffer."""

    def test_copies_input(self) -> None:
        samples = [0.1, 0.2]
        pcm = PcmBuffer((samples,), 8000)
        samples[0] = 9.0
        assert pcm.channels[0][0] == 0.1

    def test_shape(self) -> None:
        pcm = PcmBuffer(([0.0] * 4000, [0.0] * 4000), 8000)
        assert (pcm.channel_count, pcm.frame_count, pcm.duration) == (2, 4000, 0.5)

    def test_rejects_ragged_channels(self) -> None:
        with pytest.raises(ValueError):
            PcmBuffer(([0.0, 0.0], [0.0]), 8000)

    def test_rejects_no_channels(self) -> None:
        with pytest.raises(ValueError):
            PcmBuffer((), 8000)

    def test_from_interleaved(self) -> None:
        pcm = PcmBuffer.from_interleaved([1.0, -1.0, 0.5, -0.5, 0.25], 2, 8000)
        assert list(pcm.channels[0]) == [1.0, 0.5]
        assert list(pcm.channels[1]) == [-1.0, -0.5]


@pytest.mark.unit
class TestAudioArtifact:
    """Test AudioArtifact."""

    def test_properties(self) -> None:
        artifact = AudioArtifact(sine_pcm(2.0, sample_rate=8000), 75.0, True)
        assert artifact.mime_type == "audio/wav"
        assert artifact.sample_rate == 8000
        assert artifact.duration == 2.0
        assert artifact.metadata() == {
            "duration": 2.0,
            "originalDuration": 75.0,
            "wasTrimmed": True,
            "sampleRate": 8000,
            "channels": 1,
        }

    def test_wav_is_encoded_once(self) -> None:
        artifact = AudioArtifact(sine_pcm(0.1), 0.1, False)
        assert artifact.to_wav() is artifact.to_wav()


@pytest.mark.unit
class TestAlarmSerialization:
    """Test alarm_to_dict() and alarm_from_dict()."""

    def test_round_trip(self) -> None:
        alarm = make_alarm(5, 30, Repeat.WEEKENDS, label="Hike", language="en-GB", message_repeat=3)
        assert alarm_from_dict(alarm_to_dict(alarm)) == alarm

    def test_missing_id(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            alarm_from_dict({"hours": 1})
        assert exc_info.value.field == "id"

    def test_bad_timestamp(self) -> None:
        with pytest.raises(ValidationError):
            alarm_from_dict({"id": "a" * 32, "createdAt": "yesterday"})

    def test_utc_timestamp_becomes_naive_local_time(self) -> None:
        alarm = alarm_from_dict({"id": "a" * 32, "createdAt": "2024-01-01T00:00:00.000Z"})

        expected = datetime(2024, 1, 1, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
        assert alarm.created_at == expected
        assert alarm.created_at.tzinfo is None

    def test_offset_timestamp_sorts_with_naive_ones(self) -> None:
        stored = alarm_from_dict(
            {"id": "a" * 32, "hours": 8, "minutes": 0, "createdAt": "2024-01-01T09:00:00+05:30"}
        )
        fresh = Alarm(id="b" * 32, hours=8, minutes=0, created_at=datetime.now())

        assert sort_alarms([fresh, stored]) == [stored, fresh]

    def test_unknown_sound_falls_back_to_bell(self) -> None:
        assert alarm_from_dict({"id": "a" * 32, "sound": "klaxon"}).sound == "bell"

    def test_time_label(self) -> None:
        assert make_alarm(7, 5).time_label == "07:05"

    def test_new_ids_are_unique_hex(self) -> None:
        ids = {new_alarm_id() for _ in range(50)}
        assert len(ids) == 50
        assert all(len(i) == 32 and int(i, 16) >= 0 for i in ids)

    def test_sort_by_time_then_creation(self) -> None:
        early = Alarm(id="1" * 32, hours=6, minutes=0, created_at=datetime(2024, 1, 2))
        late = Alarm(id="2" * 32, hours=18, minutes=0, created_at=datetime(2024, 1, 1))
        early_twin = Alarm(id="3" * 32, hours=6, minutes=0, created_at=datetime(2024, 1, 3))
        assert sort_alarms([late, early_twin, early]) == [early, early_twin, late]


@pytest.mark.unit
class TestRepeat:
    """Test Repeat.allows()."""

    @pytest.mark.parametrize(
        "repeat,allowed",
        [
            (Repeat.NEVER, range(7)),
            (Repeat.DAILY, range(7)),
            (Repeat.WEEKDAYS, range(5)),
            (Repeat.WEEKENDS, (5, 6)),
        ],
    )
    def test_allowed_weekdays(self, repeat: Repeat, allowed) -> None:
        assert [d for d in range(7) if repeat.allows(d)] == list(allowed)


@pytest.mark.unit
class TestValidation:
    """Test validation helpers."""

    def test_clamping(self) -> None:
        assert clamp_hours("25") == 23
        assert clamp_hours(-1) == 0
        assert clamp_message_repeat(0) == 1
        assert clamp_message_repeat(12) == 5

    @pytest.mark.parametrize("value", ["abc", None, True, float("nan")])
    def test_clamping_rejects_non_numbers(self, value) -> None:
        with pytest.raises(ValidationError):
            clamp_hours(value)

    def test_parse_time(self) -> None:
        assert parse_time("7:05") == {"hours": 7, "minutes": 5}
        assert parse_time("23:59") == {"hours": 23, "minutes": 59}

    @pytest.mark.parametrize("value", ["0730", "7", "aa:bb", "", 730])
    def test_parse_time_rejects(self, value) -> None:
        with pytest.raises(ValidationError):
            parse_time(value)

    def test_normalize_repeat(self) -> None:
        assert normalize_repeat(None) is Repeat.NEVER
        assert normalize_repeat("WEEKDAYS") is Repeat.WEEKDAYS
        with pytest.raises(ValidationError):
            normalize_repeat("hourly")

    def test_sound(self) -> None:
        assert normalize_sound({"id": "buzz", "name": "Buzzer"}) == "buzz"
        assert normalize_sound(None) == "bell"
        assert validate_sound("chirp") == "chirp"
        with pytest.raises(ValidationError):
            validate_sound("klaxon")

    def test_alarm_id(self) -> None:
        raw = "0190a3b2-7c4d-7e8f-9a0b-1c2d3e4f5a6b"
        assert validate_alarm_id(raw) == raw.replace("-", "")
        with pytest.raises(ValidationError):
            validate_alarm_id("xyz")
        with pytest.raises(ValidationError):
            validate_alarm_id("g" * 32)

    def test_text_length(self) -> None:
        assert validate_text("hi", "label", 5) == "hi"
        with pytest.raises(ValidationError):
            validate_text("too long", "label", 5)
        with pytest.raises(ValidationError):
            validate_text(5, "label", 5)

    def test_language(self) -> None:
        assert validate_language(" hi-IN ") == "hi-IN"
        with pytest.raises(ValidationError):
            validate_language("english please")

    def test_parse_seconds(self) -> None:
        assert parse_seconds(None, "start") is None
        assert parse_seconds("", "start") is None
        assert parse_seconds("12.5", "start") == 12.5
        with pytest.raises(ValidationError):
            parse_seconds("soon", "start")

    def test_validation_error_format(self) -> None:
        error = ValidationError("label", "too long")
        assert str(error) == "label: too long"
        assert isinstance(error, ValueError)
