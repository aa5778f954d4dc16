"""Alarm trigger scheduler.

Each alarm is either armed (enabled) or disarmed. A periodic tick reads the
current local time and fires every armed alarm whose time matches:

    now.second == 0
    and now.hour == alarm.hours and now.minute == alarm.minutes
    and the repeat policy allows today's weekday

Firing an alarm plays its sound (custom audio first, otherwise its built-in
tone), schedules its spoken message, shows a notification and, for one-time
alarms, disarms it and persists that before the tick returns.

The scheduler also remembers the minute each alarm last fired in, so two
ticks landing in the same second 0 (timer jitter) can't fire it twice.
Minutes missed while the process was suspended are skipped, not caught up.
"""

from __future__ import annotations

import logging
import threading
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from .errors import PersistenceError
from .models import Alarm, AudioArtifact, Repeat
from .speech import DEFAULT_INTERVAL, DEFAULT_PITCH, DEFAULT_RATE, SpeechBatch

logger = logging.getLogger(__name__)

MinuteKey = Tuple[date, int, int]


def repeat_allows(repeat: Repeat, weekday: int) -> bool:
    """Check a repeat policy against a weekday (Monday == 0)."""
    return repeat.allows(weekday)


def matches(now: datetime, alarm: Alarm) -> bool:
    """Check whether an alarm's time and repeat policy match now.

    The enabled flag is not considered.
    """
    return (
        now.second == 0
        and now.hour == alarm.hours
        and now.minute == alarm.minutes
        and repeat_allows(alarm.repeat, now.weekday())
    )


def next_trigger(alarm: Alarm, now: datetime) -> Optional[datetime]:
    """Get the next time an alarm will fire, or None if it's disarmed."""
    if not alarm.enabled:
        return None
    candidate = now.replace(hour=alarm.hours, minute=alarm.minutes, second=0, microsecond=0)
    if candidate < now:
        candidate += timedelta(days=1)
    for _ in range(7):
        if repeat_allows(alarm.repeat, candidate.weekday()):
            return candidate
        candidate += timedelta(days=1)
    return None


def playback_source(alarm: Alarm) -> Tuple[str, Any]:
    """Resolve what to play for an alarm.

    Returns:
        ("artifact", AudioArtifact) when the alarm has custom audio,
        otherwise ("tone", sound_id).
    """
    if alarm.custom_audio is not None:
        return "artifact", alarm.custom_audio
    return "tone", alarm.sound


class AlarmDispatcher:
    """Performs the side effects of a firing alarm.

    Each step is isolated: a failed playback doesn't stop the speech, and a
    failed speech doesn't stop the notification.
    """

    def __init__(
        self,
        player: Any,
        speaker: Any,
        notifier: Any,
        speech_interval: float = DEFAULT_INTERVAL,
        speech_rate: float = DEFAULT_RATE,
        speech_pitch: float = DEFAULT_PITCH,
        timer_factory: Callable[..., Any] = threading.Timer,
    ) -> None:
        self.player = player
        self.speaker = speaker
        self.notifier = notifier
        self.speech_interval = speech_interval
        self.speech_rate = speech_rate
        self.speech_pitch = speech_pitch
        self._timer_factory = timer_factory
        self._batches: List[SpeechBatch] = []
        self._lock = threading.Lock()

    def trigger(self, alarm: Alarm) -> SpeechBatch:
        """Play, speak and notify for an alarm.

        Returns:
            The speech batch scheduled for the alarm's message.
        """
        kind, source = playback_source(alarm)
        try:
            if kind == "artifact":
                artifact: AudioArtifact = source
                self.player.play_artifact(artifact.to_wav(), artifact.mime_type)
            else:
                self.player.play_tone(source)
        except Exception as e:
            logger.warning(f"Playback failed for alarm {alarm.id}: {e}")

        batch = SpeechBatch(
            self.speaker,
            alarm.message,
            alarm.language,
            alarm.message_repeat,
            interval=self.speech_interval,
            rate=self.speech_rate,
            pitch=self.speech_pitch,
            timer_factory=self._timer_factory,
        )
        with self._lock:
            self._batches = [b for b in self._batches if not b.cancelled]
            self._batches.append(batch)
        try:
            batch.start()
        except Exception as e:
            logger.warning(f"Could not schedule speech for alarm {alarm.id}: {e}")

        try:
            self.notifier.notify(alarm.label, alarm.message)
        except Exception as e:
            logger.warning(f"Notification failed for alarm {alarm.id}: {e}")

        return batch

    def stop_speaking(self) -> None:
        """Cancel all pending and in-progress speech."""
        with self._lock:
            batches, self._batches = self._batches, []
        for batch in batches:
            batch.cancel()

    def stop(self) -> None:
        """Stop speech and playback."""
        self.stop_speaking()
        try:
            self.player.stop()
        except Exception as e:
            logger.warning(f"Error stopping playback: {e}")


class AlarmScheduler:
    """Evaluates alarms once per tick.

    Use tick() directly with an explicit time for deterministic tests, or
    start()/stop() to run it on a background thread against the clock.
    """

    def __init__(
        self,
        store: Any,
        dispatcher: AlarmDispatcher,
        clock: Callable[[], datetime] = datetime.now,
        interval: float = 1.0,
    ) -> None:
        """Initialize the scheduler.

        Args:
            store: AlarmStore (anything with load_all/save_all and a lock).
            dispatcher: Performs the side effects of a firing.
            clock: Returns the current local time.
            interval: Seconds between ticks; at most 1 so no second 0 is skipped.
        """
        if not 0 < interval <= 1.0:
            raise ValueError(f"interval must be in (0, 1], got {interval}")
        self.store = store
        self.dispatcher = dispatcher
        self.clock = clock
        self.interval = interval
        self._last_fired: Dict[str, MinuteKey] = {}
        self._pending_disarm: Set[str] = set()
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self, now: Optional[datetime] = None) -> List[Alarm]:
        """Evaluate every alarm once.

        Args:
            now: Time to evaluate at (default: the clock).

        Returns:
            The alarms that fired, as they were before firing.
        """
        now = now or self.clock()
        if self._pending_disarm:
            self._disarm()
        if now.second != 0:
            return []
        key: MinuteKey = (now.date(), now.hour, now.minute)

        with self.store.lock:
            try:
                alarms = self.store.load_all()
            except PersistenceError as e:
                logger.error(f"Could not load alarms: {e}")
                return []

            live_ids = {alarm.id for alarm in alarms}
            for alarm_id in list(self._last_fired):
                if alarm_id not in live_ids:
                    del self._last_fired[alarm_id]

            due = [
                alarm
                for alarm in alarms
                if alarm.enabled
                and alarm.id not in self._pending_disarm
                and matches(now, alarm)
                and self._last_fired.get(alarm.id) != key
            ]
            for alarm in due:
                self._last_fired[alarm.id] = key

        if not due:
            return []

        # Dispatch can block on subprocesses; other writers may save meanwhile
        for alarm in due:
            logger.info(f"Alarm {alarm.id[:8]} '{alarm.label}' firing at {alarm.time_label}")
            self.dispatcher.trigger(alarm)

        one_time = {alarm.id for alarm in due if alarm.repeat is Repeat.NEVER}
        if one_time:
            self._pending_disarm.update(one_time)
            self._disarm()

        return due

    def _disarm(self) -> None:
        """Disable fired one-time alarms in a freshly loaded collection.

        Only the fired records change, so edits saved by another process
        during dispatch are kept. If the collection can't be read, the ids
        stay pending and are retried on the next tick.
        """
        with self.store.lock:
            try:
                alarms = self.store.load_all()
            except PersistenceError as e:
                logger.error(f"Could not reload alarms to disarm: {e}")
                return

            alarm_ids, self._pending_disarm = self._pending_disarm, set()
            if not any(alarm.id in alarm_ids for alarm in alarms):
                return
            updated = [
                alarm.with_changes(enabled=False)
                if alarm.id in alarm_ids and alarm.repeat is Repeat.NEVER
                else alarm
                for alarm in alarms
            ]
            try:
                self.store.save_all(updated)
            except PersistenceError as e:
                # The store keeps the disarmed alarms in memory and retries the write
                logger.error(f"Could not save disarmed alarms: {e}")

    def start(self) -> None:
        """Start ticking on a background thread."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="alarm-scheduler", daemon=True)
        self._thread.start()
        logger.info("Alarm scheduler started")

    def stop(self, timeout: float = 2.0) -> None:
        """Stop the background thread."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Alarm scheduler stopped")

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Alarm tick failed: {e}")
            self._stop_event.wait(self._delay())

    def _delay(self) -> float:
        """Seconds until just after the next interval boundary."""
        now = self.clock()
        elapsed = (now.second + now.microsecond / 1_000_000) % self.interval
        return self.interval - elapsed + 0.005
