"""Wiring of stores, services and collaborators from a Config.

Shared by the CLI, the web API and the foreground scheduler so they all
read the same settings the same way.

CRITICAL: This module must have NO Flask dependencies.
"""

from __future__ import annotations

import threading
from typing import Any, Callable

from .alarm_service import AlarmService
from .artifact_manager import ArtifactManager
from .audio_player import AudioPlayer
from .config import Config
from .models import DEFAULT_LANGUAGE
from .notifier import Notifier
from .scheduler import AlarmDispatcher, AlarmScheduler
from .speech import Speaker
from .store import AlarmStore


def open_store(config: Config) -> AlarmStore:
    """Open the alarm collection configured in config."""
    artifacts = ArtifactManager(config.get_artifact_directory())
    return AlarmStore(config.get_alarms_file(), artifacts)


def open_service(config: Config, store: AlarmStore | None = None) -> AlarmService:
    """Create an AlarmService using the configured limits."""
    return AlarmService(
        store or open_store(config),
        max_duration=config.get_float("max_audio_duration"),
        max_upload_bytes=config.get_int("max_upload_bytes"),
        default_language=config.get("default_language", DEFAULT_LANGUAGE),
    )


def create_dispatcher(
    config: Config, timer_factory: Callable[..., Any] = threading.Timer
) -> AlarmDispatcher:
    """Create the dispatcher with MPV, espeak-ng and notify-send collaborators."""
    return AlarmDispatcher(
        player=AudioPlayer(command=config.get("player_command", "mpv")),
        speaker=Speaker(command=config.get("speech_command", "espeak-ng")),
        notifier=Notifier(enabled=config.notifications_enabled()),
        speech_interval=config.get_float("speech_interval"),
        speech_rate=config.get_float("speech_rate"),
        speech_pitch=config.get_float("speech_pitch"),
        timer_factory=timer_factory,
    )


def create_scheduler(config: Config, store: AlarmStore) -> AlarmScheduler:
    """Create a scheduler for store using the configured collaborators."""
    return AlarmScheduler(
        store,
        create_dispatcher(config),
        interval=min(1.0, config.get_float("tick_interval")),
    )
