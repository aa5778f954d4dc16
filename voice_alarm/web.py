#!/usr/bin/env python3
"""Web API for Voice Alarm.

This module provides a RESTful HTTP API for managing alarms and their audio.
Uses only core/ modules - the scheduler itself runs under `cli run`.

Endpoints:
    GET    /api/alarms                List all alarms
    POST   /api/alarms                Create a new alarm
    GET    /api/alarms/<id>           Get specific alarm
    PUT    /api/alarms/<id>           Update an alarm
    DELETE /api/alarms/<id>           Delete an alarm
    POST   /api/alarms/<id>/toggle    Enable or disable an alarm
    POST   /api/alarms/<id>/audio     Upload audio (multipart "file", form start/end)
    PUT    /api/alarms/<id>/audio     Trim the attached audio again (JSON start/end)
    GET    /api/alarms/<id>/audio     Download the alarm's audio as WAV
    DELETE /api/alarms/<id>/audio     Remove the attached audio
    GET    /api/sounds                List built-in sounds
    GET    /api/sounds/<id>           Render a built-in sound as WAV
    GET    /api/health                Health check

JSON responses everywhere except the WAV downloads.
IDs are UUID7 hex strings (32 characters, no hyphens).

POST/PUT /api/alarms body (all optional on PUT):
    - time: "HH:MM", or hours and minutes separately
    - label, message, sound, repeat, language, messageRepeat, enabled
"""

from __future__ import annotations

import argparse
import functools
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from flask import Flask, Response, jsonify, request
from flask_cors import CORS

from voice_alarm.core.alarm_service import AlarmService, confirmation_phrase, describe_alarm
from voice_alarm.core.config import Config
from voice_alarm.core.decoder import normalize_mime_type, sniff_mime_type
from voice_alarm.core.errors import (
    DecodeError,
    EmptyWindowError,
    PersistenceError,
    UnknownSoundError,
    UnsupportedFormatError,
)
from voice_alarm.core.models import sort_alarms
from voice_alarm.core.runtime import open_service
from voice_alarm.core.tones import SOUND_CATALOG, get_sound, synthesize
from voice_alarm.core.validation import (
    ValidationError,
    parse_seconds,
    parse_time,
    validate_alarm_id,
)
from voice_alarm.core.wav import encode_wav

logger = logging.getLogger(__name__)

# Request body keys accepted for alarm fields
FIELD_KEYS = {
    "hours": "hours",
    "minutes": "minutes",
    "label": "label",
    "message": "message",
    "sound": "sound",
    "repeat": "repeat",
    "language": "language",
    "messageRepeat": "message_repeat",
    "enabled": "enabled",
}

# Global service instance
service: Optional[AlarmService] = None


def api_endpoint(func: Callable) -> Callable:
    """Decorator for consistent API error handling.

    Maps ValidationError to 400, unsupported uploads to 415, undecodable
    audio and empty trim windows to 422, storage failures to 503 and
    anything else to 500, each with a JSON error body.
    """
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except ValidationError as e:
            return jsonify({"error": f"Invalid {e.field}: {e.message}"}), 400
        except UnsupportedFormatError as e:
            return jsonify({"error": str(e)}), 415
        except (DecodeError, EmptyWindowError) as e:
            return jsonify({"error": str(e)}), 422
        except PersistenceError as e:
            logger.error(f"Storage error in {func.__name__}: {e}")
            return jsonify({"error": f"Could not save alarms: {e}"}), 503
        except Exception as e:
            logger.error(f"Error in {func.__name__}: {e}")
            return jsonify({"error": str(e)}), 500
    return wrapper


def alarm_fields_from_json(data: Dict[str, Any]) -> Dict[str, Any]:
    """Translate a request body into AlarmService keyword arguments."""
    fields: Dict[str, Any] = {}
    if "time" in data:
        fields.update(parse_time(data["time"]))
    for key, name in FIELD_KEYS.items():
        if key in data:
            fields[name] = data[key]
    return fields


def wav_response(data: bytes, filename: str) -> Response:
    """Build a WAV download response."""
    response = Response(data, mimetype="audio/wav")
    response.headers["Content-Disposition"] = f'inline; filename="{filename}"'
    return response


def _not_found(alarm_id: str) -> tuple[Response, int]:
    return jsonify({"error": f"Alarm {alarm_id} not found"}), 404


def create_app(config_dir: Optional[Path] = None) -> Flask:
    """Create and configure Flask application.

    Args:
        config_dir: Custom configuration directory (default: None)

    Returns:
        Configured Flask application
    """
    app = Flask(__name__)
    CORS(app)

    config = Config(config_dir=config_dir)
    # Leave room for multipart framing around the upload itself
    app.config["MAX_CONTENT_LENGTH"] = config.get_int("max_upload_bytes") + 64 * 1024

    global service
    service = open_service(config)

    logger.info(f"Web API initialized with alarms file: {config.get_alarms_file()}")

    @app.errorhandler(404)
    def not_found(error: Any) -> tuple[Response, int]:
        """Handle 404 errors."""
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(413)
    def too_large(error: Any) -> tuple[Response, int]:
        """Handle oversized uploads rejected by Flask."""
        return jsonify({"error": "Upload is too large"}), 415

    @app.errorhandler(500)
    def internal_error(error: Any) -> tuple[Response, int]:
        """Handle 500 errors."""
        logger.error(f"Internal error: {error}")
        return jsonify({"error": "Internal server error"}), 500

    @app.route("/api/alarms", methods=["GET"])
    @api_endpoint
    def get_alarms() -> Response:
        """Get all alarms sorted by time."""
        alarms = sort_alarms(service.get_all_alarms())
        return jsonify([describe_alarm(a) for a in alarms])

    @app.route("/api/alarms", methods=["POST"])
    @api_endpoint
    def create_alarm() -> tuple[Response, int]:
        """Create a new alarm."""
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "Request body is required"}), 400

        alarm = service.create_alarm(**alarm_fields_from_json(data))
        logger.info(f"Created alarm {alarm.id} via API")
        body = describe_alarm(alarm)
        body["confirmation"] = confirmation_phrase(alarm)
        return jsonify(body), 201

    @app.route("/api/alarms/<alarm_id>", methods=["GET"])
    @api_endpoint
    def get_alarm(alarm_id: str) -> tuple[Response, int]:
        """Get specific alarm by ID."""
        alarm = service.store.get(validate_alarm_id(alarm_id))
        if alarm is None:
            return _not_found(alarm_id)
        return jsonify(describe_alarm(alarm)), 200

    @app.route("/api/alarms/<alarm_id>", methods=["PUT"])
    @api_endpoint
    def update_alarm(alarm_id: str) -> tuple[Response, int]:
        """Update an alarm."""
        alarm_id = validate_alarm_id(alarm_id)
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "Request body is required"}), 400

        alarm = service.update_alarm(alarm_id, **alarm_fields_from_json(data))
        if alarm is None:
            return _not_found(alarm_id)
        logger.info(f"Updated alarm {alarm_id} via API")
        body = describe_alarm(alarm)
        body["confirmation"] = confirmation_phrase(alarm, updated=True)
        return jsonify(body), 200

    @app.route("/api/alarms/<alarm_id>", methods=["DELETE"])
    @api_endpoint
    def delete_alarm(alarm_id: str) -> tuple[Response, int]:
        """Delete an alarm and its audio."""
        alarm_id = validate_alarm_id(alarm_id)
        if service.delete_alarm(alarm_id):
            return jsonify({"message": f"Alarm {alarm_id} deleted"}), 200
        return _not_found(alarm_id)

    @app.route("/api/alarms/<alarm_id>/toggle", methods=["POST"])
    @api_endpoint
    def toggle_alarm(alarm_id: str) -> tuple[Response, int]:
        """Enable or disable an alarm."""
        alarm = service.toggle_alarm(validate_alarm_id(alarm_id))
        if alarm is None:
            return _not_found(alarm_id)
        return jsonify(describe_alarm(alarm)), 200

    @app.route("/api/alarms/<alarm_id>/audio", methods=["POST"])
    @api_endpoint
    def upload_audio(alarm_id: str) -> tuple[Response, int]:
        """Attach uploaded audio to an alarm."""
        alarm_id = validate_alarm_id(alarm_id)
        upload = request.files.get("file")
        if upload is None:
            return jsonify({"error": "Multipart field 'file' is required"}), 400

        data = upload.read()
        mime_type = normalize_mime_type(upload.mimetype)
        if not mime_type or mime_type == "application/octet-stream":
            mime_type = sniff_mime_type(data, upload.filename)

        alarm = service.attach_audio(
            alarm_id,
            data,
            mime_type,
            parse_seconds(request.form.get("start"), "start"),
            parse_seconds(request.form.get("end"), "end"),
        )
        if alarm is None:
            return _not_found(alarm_id)
        logger.info(f"Attached {len(data)} byte upload to alarm {alarm_id} via API")
        return jsonify(describe_alarm(alarm)), 200

    @app.route("/api/alarms/<alarm_id>/audio", methods=["PUT"])
    @api_endpoint
    def retrim_audio(alarm_id: str) -> tuple[Response, int]:
        """Trim an alarm's attached audio again."""
        alarm_id = validate_alarm_id(alarm_id)
        data = request.get_json(silent=True) or {}
        alarm = service.retrim_audio(
            alarm_id,
            parse_seconds(data.get("start"), "start"),
            parse_seconds(data.get("end"), "end"),
        )
        if alarm is None:
            return _not_found(alarm_id)
        return jsonify(describe_alarm(alarm)), 200

    @app.route("/api/alarms/<alarm_id>/audio", methods=["GET"])
    @api_endpoint
    def get_audio(alarm_id: str) -> Any:
        """Download the audio an alarm plays, custom or built-in."""
        alarm = service.store.get(validate_alarm_id(alarm_id))
        if alarm is None:
            return _not_found(alarm_id)
        if alarm.custom_audio is not None:
            return wav_response(alarm.custom_audio.to_wav(), f"{alarm.id}.wav")
        return wav_response(encode_wav(synthesize(alarm.sound)), f"{alarm.sound}.wav")

    @app.route("/api/alarms/<alarm_id>/audio", methods=["DELETE"])
    @api_endpoint
    def clear_audio(alarm_id: str) -> tuple[Response, int]:
        """Remove an alarm's custom audio."""
        alarm = service.clear_audio(validate_alarm_id(alarm_id))
        if alarm is None:
            return _not_found(alarm_id)
        return jsonify(describe_alarm(alarm)), 200

    @app.route("/api/sounds", methods=["GET"])
    @api_endpoint
    def get_sounds() -> Response:
        """List built-in sounds."""
        return jsonify([
            {"id": s.id, "name": s.name, "duration": round(s.duration, 3)}
            for s in SOUND_CATALOG.values()
        ])

    @app.route("/api/sounds/<sound_id>", methods=["GET"])
    @api_endpoint
    def get_sound_audio(sound_id: str) -> Any:
        """Render a built-in sound as WAV."""
        try:
            sound = get_sound(sound_id)
        except UnknownSoundError as e:
            return jsonify({"error": str(e)}), 404
        return wav_response(encode_wav(synthesize(sound.id)), f"{sound.id}.wav")

    @app.route("/api/health", methods=["GET"])
    def health_check() -> tuple[Response, int]:
        """Health check endpoint.

        Returns:
            JSON response indicating service health
        """
        status = "degraded" if service.store.has_pending_write else "ok"
        return jsonify({"status": status}), 200

    return app


def add_web_subparser(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    """Add web subparser and its arguments.

    Args:
        subparsers: Parent subparsers object to add web parser to
    """
    web_parser = subparsers.add_parser(
        "web",
        help="Start web API server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    web_parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)"
    )

    web_parser.add_argument(
        "--port",
        type=int,
        default=5000,
        help="Port to bind to (default: 5000)"
    )

    web_parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode"
    )


def run(config_dir: Optional[Path], args: argparse.Namespace) -> int:
    """Run web server with given arguments.

    Args:
        config_dir: Custom configuration directory or None for default
        args: Parsed command-line arguments (should have host, port, debug attributes)

    Returns:
        Exit code (0 for success)
    """
    logger.info("Starting Voice Alarm Web API")
    if config_dir:
        logger.info(f"Using custom config directory: {config_dir}")

    app = create_app(config_dir=config_dir)
    app.run(host=args.host, port=args.port, debug=args.debug)
    return 0
