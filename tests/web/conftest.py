"""Pytest fixtures for web API tests.

Provides a Flask test client backed by a temporary config directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Generator

import pytest
from flask import Flask
from flask.testing import FlaskClient

from voice_alarm.web import create_app


@pytest.fixture
def web_app(test_config_dir: Path) -> Generator[Flask, None, None]:
    """Create Flask app for testing.

    Args:
        test_config_dir: Temporary config directory

    Yields:
        Flask application instance
    """
    app = create_app(config_dir=test_config_dir)
    app.config["TESTING"] = True
    yield app


@pytest.fixture
def client(web_app: Flask) -> FlaskClient:
    """Create Flask test client."""
    return web_app.test_client()


@pytest.fixture
def created_alarm(client: FlaskClient) -> Dict[str, Any]:
    """Create one alarm through the API and return its JSON."""
    response = client.post("/api/alarms", json={"time": "07:30", "label": "Morning"})
    assert response.status_code == 201
    return response.get_json()
