"""Pytest fixtures for Voice Alarm tests.

This module provides fixtures for test configuration, the alarm store and
the alarm service, all rooted in a temporary config directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import List

import pytest

from voice_alarm.core.alarm_service import AlarmService
from voice_alarm.core.artifact_manager import ArtifactManager
from voice_alarm.core.config import Config
from voice_alarm.core.store import AlarmStore

from tests.helpers import FakeTimer


@pytest.fixture
def test_config_dir(tmp_path: Path) -> Path:
    """Create temporary config directory for tests.

    Args:
        tmp_path: pytest temporary directory fixture

    Returns:
        Path to temporary config directory.
    """
    config_dir = tmp_path / "voice_alarm_test"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


@pytest.fixture
def test_config(test_config_dir: Path) -> Config:
    """Create test configuration."""
    return Config(config_dir=test_config_dir)


@pytest.fixture
def artifacts(test_config: Config) -> ArtifactManager:
    """Create an artifact manager in the test config directory."""
    return ArtifactManager(test_config.get_artifact_directory())


@pytest.fixture
def store(test_config: Config, artifacts: ArtifactManager) -> AlarmStore:
    """Create an empty alarm store."""
    return AlarmStore(test_config.get_alarms_file(), artifacts)


@pytest.fixture
def service(store: AlarmStore) -> AlarmService:
    """Create an alarm service over the test store."""
    return AlarmService(store)


@pytest.fixture
def fake_timers() -> List[FakeTimer]:
    """Collect the FakeTimers created during a test."""
    FakeTimer.created.clear()
    return FakeTimer.created
