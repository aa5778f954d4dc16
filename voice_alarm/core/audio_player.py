"""Audio player using MPV.

This module provides alarm playback using the MPV media player. Audio is
handed over as bytes (an uploaded artifact, or a built-in tone rendered to
WAV), written to a private temporary directory and played by an MPV
subprocess. Playback is fire-and-forget, and sounds started close together
play side by side until stop() ends them all.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
import threading
from pathlib import Path
from typing import List, Optional

from .decoder import ACCEPTED_MIME_TYPES, normalize_mime_type
from .errors import PlaybackError
from .tones import synthesize
from .wav import encode_wav

logger = logging.getLogger(__name__)


def is_mpv_available(command: str = "mpv") -> bool:
    """Check if MPV is installed and available."""
    return shutil.which(command) is not None


class AudioPlayer:
    """Audio player using an MPV subprocess.

    Provides:
    - Playing an audio artifact from bytes
    - Playing a built-in tone
    - Stopping whatever is playing
    """

    def __init__(self, command: str = "mpv") -> None:
        """Initialize the audio player.

        Args:
            command: MPV executable name or path.
        """
        self.command = command
        self._processes: List[subprocess.Popen] = []
        self._tmp_dir: Optional[tempfile.TemporaryDirectory] = None
        self._counter = 0
        self._lock = threading.Lock()

    @property
    def is_playing(self) -> bool:
        """Check whether an MPV process is still running."""
        with self._lock:
            return any(p.poll() is None for p in self._processes)

    def play_file(self, file_path: Path | str) -> None:
        """Play an audio file alongside anything already playing.

        Raises:
            PlaybackError: If MPV is missing or can't be started.
        """
        if not is_mpv_available(self.command):
            raise PlaybackError("MPV is not installed. Cannot play audio.")

        file_path = Path(file_path)
        if not file_path.exists():
            raise PlaybackError(f"Audio file not found: {file_path}")

        try:
            process = subprocess.Popen(
                [
                    self.command,
                    "--no-video",
                    "--really-quiet",
                    "--terminal=no",
                    str(file_path),
                ],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise PlaybackError(f"Failed to start MPV: {e}") from e

        with self._lock:
            self._processes = [p for p in self._processes if p.poll() is None]
            self._processes.append(process)

    def play_artifact(self, data: bytes, mime_type: str = "audio/wav") -> None:
        """Play an in-memory audio file.

        Raises:
            PlaybackError: If the data can't be written or played.
        """
        ext = ACCEPTED_MIME_TYPES.get(normalize_mime_type(mime_type), "wav")
        with self._lock:
            if self._tmp_dir is None:
                self._tmp_dir = tempfile.TemporaryDirectory(prefix="voice-alarm-play-")
            # A fresh name each time; MPV may still be reading the last file
            self._counter += 1
            path = Path(self._tmp_dir.name) / f"play-{self._counter}.{ext}"

        try:
            path.write_bytes(data)
        except OSError as e:
            raise PlaybackError(f"Could not stage audio for playback: {e}") from e

        self.play_file(path)

    def play_tone(self, sound_id: str) -> None:
        """Render and play a built-in tone.

        Raises:
            PlaybackError: If MPV can't play the tone.
            UnknownSoundError: If the tone id doesn't exist.
        """
        self.play_artifact(encode_wav(synthesize(sound_id)), "audio/wav")

    def stop(self) -> None:
        """Stop every running playback."""
        with self._lock:
            processes, self._processes = self._processes, []

        for process in processes:
            try:
                process.terminate()
                process.wait(timeout=2.0)
            except subprocess.TimeoutExpired:
                process.kill()
            except OSError as e:
                logger.warning(f"Error stopping MPV: {e}")

    def release(self) -> None:
        """Stop playback and remove staged files."""
        self.stop()
        with self._lock:
            if self._tmp_dir is not None:
                self._tmp_dir.cleanup()
                self._tmp_dir = None
