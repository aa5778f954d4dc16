"""Built-in alarm tones.

Each tone is a fixed list of short bursts (sine, square or sawtooth) with an
exponential gain decay, rendered into a mono PcmBuffer. Rendering is a pure
function of the sound id and sample rate; nothing here touches an audio
device.
"""

from __future__ import annotations

import math
from array import array
from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple

from .errors import UnknownSoundError
from .models import PcmBuffer

DEFAULT_SAMPLE_RATE = 44100

# Every burst decays to this gain by its end
END_GAIN = 0.01


@dataclass(frozen=True)
class ToneSegment:
    """One burst of a tone.

    Attributes:
        start: Offset from the start of the tone (seconds)
        duration: Length of the burst (seconds)
        start_hz: Frequency at the start of the burst
        end_hz: Frequency at the end (linear sweep; equal to start_hz for a steady pitch)
        waveform: "sine", "square" or "sawtooth"
        gain: Initial gain, decaying exponentially to END_GAIN
    """

    start: float
    duration: float
    start_hz: float
    end_hz: float
    waveform: str
    gain: float


@dataclass(frozen=True)
class Sound:
    """A built-in tone."""

    id: str
    name: str
    segments: Tuple[ToneSegment, ...]

    @property
    def duration(self) -> float:
        return max(s.start + s.duration for s in self.segments)


def _bell() -> Tuple[ToneSegment, ...]:
    return tuple(
        ToneSegment(i * 0.3, 0.3, 800 + i * 100, 800 + i * 100, "sine", 0.3)
        for i in range(3)
    )


def _chirp() -> Tuple[ToneSegment, ...]:
    return tuple(ToneSegment(i * 0.15, 0.15, 600, 1200, "sine", 0.3) for i in range(4))


def _digital() -> Tuple[ToneSegment, ...]:
    return tuple(
        ToneSegment(i * 0.2, 0.2, freq, freq, "square", 0.2)
        for i, freq in enumerate((700, 900, 700, 900))
    )


def _buzz() -> Tuple[ToneSegment, ...]:
    return (ToneSegment(0.0, 1.0, 400, 400, "sawtooth", 0.3),)


SOUND_CATALOG: Dict[str, Sound] = {
    "bell": Sound("bell", "Bell", _bell()),
    "chirp": Sound("chirp", "Chirp", _chirp()),
    "digital": Sound("digital", "Digital", _digital()),
    "buzz": Sound("buzz", "Buzzer", _buzz()),
}


def _sine(phase: float) -> float:
    return math.sin(2 * math.pi * phase)


def _square(phase: float) -> float:
    return 1.0 if phase % 1.0 < 0.5 else -1.0


def _sawtooth(phase: float) -> float:
    return 2.0 * ((phase + 0.5) % 1.0) - 1.0


_OSCILLATORS: Dict[str, Callable[[float], float]] = {
    "sine": _sine,
    "square": _square,
    "sawtooth": _sawtooth,
}


def get_sound(sound_id: str) -> Sound:
    """Look up a built-in tone.

    Raises:
        UnknownSoundError: If no tone has this id.
    """
    try:
        return SOUND_CATALOG[sound_id]
    except KeyError:
        raise UnknownSoundError(sound_id) from None


def segment_offsets(sound_id: str) -> List[float]:
    """Get the start offset (seconds) of each burst in a tone."""
    return [segment.start for segment in get_sound(sound_id).segments]


def render_segment(segment: ToneSegment, sample_rate: int) -> array:
    """Render a single burst into samples."""
    frames = int(round(segment.duration * sample_rate))
    oscillator = _OSCILLATORS[segment.waveform]
    sweep = (segment.end_hz - segment.start_hz) / segment.duration
    decay = END_GAIN / segment.gain

    samples = array("d", bytes(8 * frames))
    for n in range(frames):
        t = n / sample_rate
        # Phase of a linear frequency sweep, in cycles
        phase = segment.start_hz * t + 0.5 * sweep * t * t
        gain = segment.gain * decay ** (t / segment.duration)
        samples[n] = gain * oscillator(phase)
    return samples


def synthesize(sound_id: str, sample_rate: int = DEFAULT_SAMPLE_RATE) -> PcmBuffer:
    """Render a built-in tone to a mono PCM buffer.

    Args:
        sound_id: Tone id from SOUND_CATALOG.
        sample_rate: Output sample rate.

    Returns:
        Mono PcmBuffer covering the whole tone.

    Raises:
        UnknownSoundError: If no tone has this id.
    """
    sound = get_sound(sound_id)
    total = int(round(sound.duration * sample_rate))
    out = array("d", bytes(8 * total))

    for segment in sound.segments:
        offset = int(round(segment.start * sample_rate))
        for i, sample in enumerate(render_segment(segment, sample_rate)):
            if offset + i < total:
                out[offset + i] += sample

    return PcmBuffer((out,), sample_rate)
