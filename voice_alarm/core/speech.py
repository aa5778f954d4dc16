"""Spoken alarm messages.

Speaker wraps the espeak-ng command line synthesizer. SpeechBatch schedules
an alarm's repeated message (one utterance every few seconds) on timers and
can cancel the whole group: once cancel() returns, no further utterance from
the batch starts and the one in progress is stopped.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import threading
from typing import Any, Callable, List, Optional, Set

logger = logging.getLogger(__name__)

# espeak-ng defaults that rate 1.0 / pitch 1.0 map onto
BASE_WORDS_PER_MINUTE = 175
BASE_PITCH = 50

DEFAULT_RATE = 0.9
DEFAULT_PITCH = 1.1
DEFAULT_INTERVAL = 3.0


class Speaker:
    """Text-to-speech through espeak-ng subprocesses."""

    def __init__(self, command: str = "espeak-ng") -> None:
        """Initialize the speaker.

        Args:
            command: espeak-ng (or compatible espeak) executable.
        """
        self.command = command
        self._voices: Optional[Set[str]] = None
        self._processes: List[subprocess.Popen] = []
        self._lock = threading.Lock()

    def is_available(self) -> bool:
        """Check if the speech command is installed."""
        return shutil.which(self.command) is not None

    def available_voices(self) -> Set[str]:
        """Get the lowercase language names espeak-ng has voices for."""
        if self._voices is None:
            voices: Set[str] = set()
            try:
                result = subprocess.run(
                    [self.command, "--voices"],
                    capture_output=True,
                    text=True,
                    timeout=10,
                )
                # Columns: Pty Language Age/Gender VoiceName File Other
                for line in result.stdout.splitlines()[1:]:
                    parts = line.split()
                    if len(parts) >= 2:
                        voices.add(parts[1].lower())
            except (OSError, subprocess.SubprocessError) as e:
                logger.warning(f"Could not list speech voices: {e}")
            self._voices = voices
        return self._voices

    def resolve_voice(self, language: str) -> Optional[str]:
        """Map a language tag to an installed voice.

        Tries the full tag ("en-gb"), then the primary language ("en").
        Returns None to use the default voice.
        """
        voices = self.available_voices()
        tag = (language or "").lower()
        if tag in voices:
            return tag
        primary = tag.split("-", 1)[0]
        if primary in voices:
            return primary
        return None

    def speak(
        self,
        text: str,
        rate: float = DEFAULT_RATE,
        pitch: float = DEFAULT_PITCH,
        language: str = "en",
    ) -> None:
        """Start speaking text. Returns immediately.

        Unsupported languages use the default voice.

        Raises:
            OSError: If the speech command can't be started.
        """
        args = [
            self.command,
            "-s", str(int(BASE_WORDS_PER_MINUTE * rate)),
            "-p", str(max(0, min(99, int(BASE_PITCH * pitch)))),
        ]
        voice = self.resolve_voice(language)
        if voice:
            args += ["-v", voice]
        else:
            logger.info(f"No voice for {language!r}, using default")
        args.append(text)

        process = subprocess.Popen(
            args,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        with self._lock:
            self._processes = [p for p in self._processes if p.poll() is None]
            self._processes.append(process)

    def stop(self) -> None:
        """Stop every utterance in progress."""
        with self._lock:
            processes, self._processes = self._processes, []
        for process in processes:
            if process.poll() is None:
                try:
                    process.terminate()
                except OSError as e:
                    logger.warning(f"Error stopping speech: {e}")


class SpeechBatch:
    """The repeated spoken message of one alarm firing.

    Utterance i starts i * interval seconds after start().
    """

    def __init__(
        self,
        speaker: Any,
        text: str,
        language: str,
        count: int,
        interval: float = DEFAULT_INTERVAL,
        rate: float = DEFAULT_RATE,
        pitch: float = DEFAULT_PITCH,
        timer_factory: Callable[..., Any] = threading.Timer,
    ) -> None:
        self.speaker = speaker
        self.text = text
        self.language = language
        self.count = count
        self.interval = interval
        self.rate = rate
        self.pitch = pitch
        self._timer_factory = timer_factory
        self._timers: List[Any] = []
        self._spoken = 0
        self._cancelled = False
        self._lock = threading.Lock()

    @property
    def spoken_count(self) -> int:
        """Number of utterances started so far."""
        return self._spoken

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def start(self) -> None:
        """Schedule every utterance."""
        with self._lock:
            for index in range(self.count):
                timer = self._timer_factory(index * self.interval, self._speak_one, args=(index,))
                timer.daemon = True
                self._timers.append(timer)
            timers = list(self._timers)
        for timer in timers:
            timer.start()

    def _speak_one(self, index: int) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._spoken += 1
            try:
                self.speaker.speak(self.text, self.rate, self.pitch, self.language)
            except Exception as e:
                logger.warning(f"Speech {index + 1}/{self.count} failed: {e}")

    def cancel(self) -> None:
        """Cancel pending utterances and stop the one in progress."""
        with self._lock:
            self._cancelled = True
            timers, self._timers = self._timers, []
        for timer in timers:
            timer.cancel()
        try:
            self.speaker.stop()
        except Exception as e:
            logger.warning(f"Error stopping speech: {e}")
