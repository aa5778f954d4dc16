"""Web API tests for custom audio and built-in sound endpoints."""

from __future__ import annotations

import io
import struct
from typing import Any, Dict

import pytest
from flask.testing import FlaskClient

from tests.helpers import make_wav


def upload(client: FlaskClient, alarm_id: str, data: bytes, filename: str = "clip.wav",
           content_type: str = "audio/wav", **form: str):
    payload: Dict[str, Any] = {"file": (io.BytesIO(data), filename, content_type)}
    payload.update(form)
    return client.post(
        f"/api/alarms/{alarm_id}/audio", data=payload, content_type="multipart/form-data"
    )


@pytest.mark.web
class TestUploadAudio:
    """Test POST /api/alarms/<id>/audio."""

    def test_upload_wav(self, client: FlaskClient, created_alarm: Dict[str, Any]) -> None:
        response = upload(client, created_alarm["id"], make_wav(2.0))

        assert response.status_code == 200
        audio = response.get_json()["custom_audio"]
        assert audio["duration"] == pytest.approx(2.0)
        assert audio["was_trimmed"] is False

    def test_upload_with_window(self, client: FlaskClient, created_alarm: Dict[str, Any]) -> None:
        response = upload(client, created_alarm["id"], make_wav(5.0), start="1", end="2.5")

        audio = response.get_json()["custom_audio"]
        assert audio["duration"] == pytest.approx(1.5)
        assert audio["original_duration"] == pytest.approx(5.0)
        assert audio["was_trimmed"] is True

    def test_generic_content_type_is_sniffed(
        self, client: FlaskClient, created_alarm: Dict[str, Any]
    ) -> None:
        response = upload(
            client, created_alarm["id"], make_wav(1.0), content_type="application/octet-stream"
        )
        assert response.status_code == 200

    def test_rejects_non_audio(self, client: FlaskClient, created_alarm: Dict[str, Any]) -> None:
        response = upload(client, created_alarm["id"], b"\x89PNG\r\n\x1a\n", "pic.png", "image/png")
        assert response.status_code == 415
        assert "error" in response.get_json()

    def test_corrupt_wav(self, client: FlaskClient, created_alarm: Dict[str, Any]) -> None:
        response = upload(client, created_alarm["id"], make_wav(1.0)[:200])
        assert response.status_code == 422

    def test_empty_window(self, client: FlaskClient, created_alarm: Dict[str, Any]) -> None:
        response = upload(client, created_alarm["id"], make_wav(1.0), start="2", end="3")
        assert response.status_code == 422

    def test_bad_window_value(self, client: FlaskClient, created_alarm: Dict[str, Any]) -> None:
        response = upload(client, created_alarm["id"], make_wav(1.0), start="soon")
        assert response.status_code == 400

    def test_missing_file_field(self, client: FlaskClient, created_alarm: Dict[str, Any]) -> None:
        response = client.post(
            f"/api/alarms/{created_alarm['id']}/audio",
            data={"start": "0"},
            content_type="multipart/form-data",
        )
        assert response.status_code == 400

    def test_missing_alarm(self, client: FlaskClient) -> None:
        assert upload(client, "f" * 32, make_wav(1.0)).status_code == 404


@pytest.mark.web
class TestManageAudio:
    """Test re-trimming, downloading and clearing audio."""

    def test_retrim(self, client: FlaskClient, created_alarm: Dict[str, Any]) -> None:
        url = f"/api/alarms/{created_alarm['id']}/audio"
        upload(client, created_alarm["id"], make_wav(10.0))

        response = client.put(url, json={"start": 2, "end": 4})

        assert response.status_code == 200
        assert response.get_json()["custom_audio"]["duration"] == pytest.approx(2.0)

    def test_retrim_without_audio(self, client: FlaskClient, created_alarm: Dict[str, Any]) -> None:
        response = client.put(f"/api/alarms/{created_alarm['id']}/audio", json={"start": 0, "end": 1})
        assert response.status_code == 400

    def test_download_custom_audio(self, client: FlaskClient, created_alarm: Dict[str, Any]) -> None:
        original = make_wav(1.0)
        upload(client, created_alarm["id"], original)

        response = client.get(f"/api/alarms/{created_alarm['id']}/audio")

        assert response.status_code == 200
        assert response.mimetype == "audio/wav"
        assert response.data == original

    def test_download_builtin_tone(self, client: FlaskClient, created_alarm: Dict[str, Any]) -> None:
        response = client.get(f"/api/alarms/{created_alarm['id']}/audio")

        assert response.status_code == 200
        assert response.data[:4] == b"RIFF"
        assert struct.unpack_from("<H", response.data, 22)[0] == 1

    def test_clear(self, client: FlaskClient, created_alarm: Dict[str, Any]) -> None:
        upload(client, created_alarm["id"], make_wav(1.0))

        response = client.delete(f"/api/alarms/{created_alarm['id']}/audio")

        assert response.status_code == 200
        assert response.get_json()["custom_audio"] is None


@pytest.mark.web
class TestSounds:
    """Test the built-in sound endpoints."""

    def test_list(self, client: FlaskClient) -> None:
        data = client.get("/api/sounds").get_json()
        assert {s["id"] for s in data} == {"bell", "chirp", "digital", "buzz"}
        assert next(s for s in data if s["id"] == "bell")["duration"] == pytest.approx(0.9)

    def test_render(self, client: FlaskClient) -> None:
        response = client.get("/api/sounds/chirp")
        assert response.status_code == 200
        assert response.mimetype == "audio/wav"
        assert struct.unpack_from("<I", response.data, 24)[0] == 44100

    def test_unknown(self, client: FlaskClient) -> None:
        response = client.get("/api/sounds/klaxon")
        assert response.status_code == 404
        assert response.get_json()["error"] == "Unknown sound: klaxon"
