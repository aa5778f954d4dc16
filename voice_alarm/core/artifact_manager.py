"""Artifact file manager for Voice Alarm.

This module handles file operations for alarm audio:
- Writing an alarm's artifact as a WAV file
- Loading it back into an AudioArtifact
- Removing it when the alarm is deleted or its audio cleared
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .decoder import decode_wav
from .errors import DecodeError, PersistenceError
from .models import AudioArtifact

logger = logging.getLogger(__name__)


class ArtifactManager:
    """Manages alarm audio files on disk.

    Artifacts are stored as {artifact_directory}/{alarm_id}.wav.
    """

    def __init__(self, artifact_directory: Path | str) -> None:
        """Initialize the artifact manager.

        Args:
            artifact_directory: Path to the directory where artifacts are stored.
        """
        self.artifact_directory = Path(artifact_directory)

    def ensure_directory(self) -> None:
        """Create the artifact directory if it doesn't exist."""
        self.artifact_directory.mkdir(parents=True, exist_ok=True)

    def get_file_path(self, alarm_id: str) -> Path:
        """Get the path an alarm's artifact is stored at."""
        return self.artifact_directory / f"{alarm_id}.wav"

    def file_exists(self, alarm_id: str) -> bool:
        """Check if an alarm has an artifact file."""
        return self.get_file_path(alarm_id).exists()

    def save(self, alarm_id: str, artifact: AudioArtifact) -> Path:
        """Write an artifact, replacing any previous one for the alarm.

        The file is written to a temporary name and renamed into place, so a
        reader never sees a partial WAV.

        Raises:
            PersistenceError: If the file can't be written.
        """
        dest = self.get_file_path(alarm_id)
        tmp = dest.with_suffix(".wav.tmp")
        try:
            self.ensure_directory()
            tmp.write_bytes(artifact.to_wav())
            os.replace(tmp, dest)
        except OSError as e:
            raise PersistenceError(f"Could not write audio for alarm {alarm_id}: {e}") from e
        return dest

    def load(self, alarm_id: str, metadata: Dict[str, Any]) -> Optional[AudioArtifact]:
        """Load an alarm's artifact.

        Args:
            alarm_id: Alarm the artifact belongs to.
            metadata: The customAudio dict stored with the alarm.

        Returns:
            The artifact, or None if the file is missing or unreadable
            (the alarm then falls back to its built-in sound).
        """
        path = self.get_file_path(alarm_id)
        try:
            pcm = decode_wav(path.read_bytes())
        except FileNotFoundError:
            logger.warning(f"Audio file missing for alarm {alarm_id}: {path}")
            return None
        except (OSError, DecodeError) as e:
            logger.warning(f"Could not load audio for alarm {alarm_id}: {e}")
            return None

        original = float(metadata.get("originalDuration") or pcm.duration)
        was_trimmed = metadata.get("wasTrimmed")
        return AudioArtifact(
            pcm=pcm,
            original_duration=original,
            was_trimmed=bool(was_trimmed) if was_trimmed is not None else original > pcm.duration,
        )

    def delete(self, alarm_id: str) -> bool:
        """Remove an alarm's artifact file.

        Returns:
            True if a file was removed, False if there was none.

        Raises:
            PersistenceError: If the file exists but can't be removed.
        """
        path = self.get_file_path(alarm_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise PersistenceError(f"Could not remove audio for alarm {alarm_id}: {e}") from e
        return True

    def cleanup_orphans(self, alarm_ids: set[str]) -> int:
        """Remove artifact files whose alarm no longer exists.

        Returns:
            Number of files removed.
        """
        if not self.artifact_directory.exists():
            return 0
        removed = 0
        for path in self.artifact_directory.glob("*.wav"):
            if path.stem not in alarm_ids:
                try:
                    path.unlink()
                    removed += 1
                except OSError as e:
                    logger.warning(f"Could not remove orphaned audio {path}: {e}")
        return removed
