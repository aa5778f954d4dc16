"""Alarm collection storage for Voice Alarm.

The whole collection lives in one JSON file under a fixed namespace key:

    {"alarms": [{...}, {...}]}

Writes replace the file atomically, so a reader always sees a complete
collection and every alarm record is either the old or the new version.
Uploaded audio is stored next to it through ArtifactManager.

If a write fails, the in-memory collection stays the source of truth for
the session: the store marks itself dirty, raises PersistenceError to the
caller, and retries the write on every later load_all()/save_all() until it
succeeds.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .artifact_manager import ArtifactManager
from .errors import PersistenceError
from .models import Alarm, AudioArtifact, alarm_from_dict, alarm_to_dict
from .validation import ValidationError

logger = logging.getLogger(__name__)

NAMESPACE = "alarms"


class AlarmStore:
    """JSON-file implementation of the alarm persistence contract.

    Attributes:
        alarms_file: Path to the JSON collection
        artifacts: Manager for the alarms' audio files
        lock: Re-entrant lock; hold it across a read-modify-write cycle
    """

    def __init__(self, alarms_file: Path | str, artifacts: ArtifactManager) -> None:
        self.alarms_file = Path(alarms_file)
        self.artifacts = artifacts
        self.lock = threading.RLock()
        self._alarms: List[Alarm] = []
        self._dirty = False
        # Stored records that don't parse; written back untouched
        self._invalid_records: List[Any] = []
        # alarm id -> (file mtime, artifact), so ticks don't re-decode WAVs
        self._artifact_cache: Dict[str, Tuple[int, AudioArtifact]] = {}

    @property
    def has_pending_write(self) -> bool:
        """True while a failed write is waiting to be retried."""
        return self._dirty

    def load_all(self) -> List[Alarm]:
        """Load every alarm, in stored order.

        Records that can't be parsed are logged and left out of the result,
        but kept as stored and written back on every save.

        Raises:
            PersistenceError: If the file exists but can't be read or parsed.
        """
        with self.lock:
            if self._dirty:
                try:
                    self._write(self._alarms)
                except PersistenceError as e:
                    logger.error(f"Retrying alarm save failed: {e}")
                    return list(self._alarms)

            records = self._read_records()
            alarms: List[Alarm] = []
            invalid: List[Any] = []
            for record in records:
                if not isinstance(record, dict):
                    logger.warning(f"Keeping unreadable alarm record as stored: {record!r}")
                    invalid.append(record)
                    continue
                try:
                    alarms.append(alarm_from_dict(record, self._load_artifact(record)))
                except ValidationError as e:
                    logger.warning(f"Keeping invalid alarm record as stored: {e}")
                    invalid.append(record)
            self._alarms = alarms
            self._invalid_records = invalid
            return list(alarms)

    def save_all(self, alarms: Sequence[Alarm]) -> None:
        """Replace the stored collection.

        Raises:
            PersistenceError: If the write fails. The given alarms are kept
                in memory and the write is retried later.
        """
        with self.lock:
            self._alarms = list(alarms)
            try:
                self._write(self._alarms)
            except PersistenceError:
                self._dirty = True
                raise

    def get(self, alarm_id: str) -> Optional[Alarm]:
        """Load a single alarm by full ID."""
        for alarm in self.load_all():
            if alarm.id == alarm_id:
                return alarm
        return None

    def _read_records(self) -> List[Any]:
        if not self.alarms_file.exists():
            return []
        try:
            with open(self.alarms_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Could not read {self.alarms_file}: {e}") from e

        records = data.get(NAMESPACE) if isinstance(data, dict) else None
        if not isinstance(records, list):
            raise PersistenceError(f"{self.alarms_file} has no '{NAMESPACE}' list")
        return records

    def _load_artifact(self, record: Dict[str, Any]) -> Optional[AudioArtifact]:
        metadata = record.get("customAudio")
        alarm_id = record.get("id")
        if not isinstance(metadata, dict) or not isinstance(alarm_id, str):
            return None

        path = self.artifacts.get_file_path(alarm_id)
        try:
            mtime = path.stat().st_mtime_ns
        except OSError:
            mtime = -1

        cached = self._artifact_cache.get(alarm_id)
        if cached and cached[0] == mtime:
            return cached[1]

        artifact = self.artifacts.load(alarm_id, metadata)
        if artifact is not None:
            self._artifact_cache[alarm_id] = (mtime, artifact)
        return artifact

    def _write(self, alarms: Sequence[Alarm]) -> None:
        """Write artifacts and the collection file."""
        live_ids = {a.id for a in alarms}
        kept = [r for r in self._invalid_records if _record_id(r) not in live_ids]
        records = [alarm_to_dict(a) for a in alarms] + kept
        try:
            for alarm in alarms:
                self._sync_artifact(alarm)

            self.alarms_file.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.alarms_file.with_suffix(".json.tmp")
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump({NAMESPACE: records}, f, indent=2)
            os.replace(tmp, self.alarms_file)
        except OSError as e:
            raise PersistenceError(f"Could not write {self.alarms_file}: {e}") from e

        self._invalid_records = kept
        live_ids.update(r_id for r_id in map(_record_id, kept) if r_id)
        for alarm_id in list(self._artifact_cache):
            if alarm_id not in live_ids:
                del self._artifact_cache[alarm_id]
        self.artifacts.cleanup_orphans(live_ids)
        self._dirty = False

    def _sync_artifact(self, alarm: Alarm) -> None:
        """Make the artifact file match the alarm's custom audio."""
        if alarm.custom_audio is None:
            self._artifact_cache.pop(alarm.id, None)
            self.artifacts.delete(alarm.id)
            return

        cached = self._artifact_cache.get(alarm.id)
        if cached and cached[1] is alarm.custom_audio and self.artifacts.file_exists(alarm.id):
            return

        path = self.artifacts.save(alarm.id, alarm.custom_audio)
        self._artifact_cache[alarm.id] = (path.stat().st_mtime_ns, alarm.custom_audio)


def _record_id(record: Any) -> Optional[str]:
    alarm_id = record.get("id") if isinstance(record, dict) else None
    return alarm_id if isinstance(alarm_id, str) else None
