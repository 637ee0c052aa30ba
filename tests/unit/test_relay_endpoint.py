"""Testes do endpoint WebSocket / e do health check."""

from __future__ import annotations

import base64

import pytest
from fastapi import FastAPI
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from tests.fakes import FakeRecognitionClient, FakeTranscoder
from voxrelay._types import RecognitionEvent, RecognitionFailure, TranscriptResult
from voxrelay.config.settings import RelaySettings
from voxrelay.server.app import create_app


def _chunk(data: bytes = b"\x00\x01 3gp chunk") -> dict[str, str]:
    return {"type": "audio_chunk", "data": base64.b64encode(data).decode()}


def _make_app(
    scripted: list[RecognitionEvent] | None = None,
) -> tuple[FastAPI, FakeRecognitionClient]:
    recognition_client = FakeRecognitionClient(scripted=scripted)
    app = create_app(
        RelaySettings(),
        recognition_client=recognition_client,
        transcoder=FakeTranscoder(),
    )
    return app, recognition_client


def test_health_reports_active_sessions() -> None:
    app, _ = _make_app()
    with TestClient(app) as client:
        response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["version"] == "0.1.0"
    assert body["active_sessions"] == 0


def test_transcripts_relayed_to_client() -> None:
    """Chunk abre o stream e as transcricoes chegam na ordem emitida."""
    app, recognition_client = _make_app(
        scripted=[
            TranscriptResult(transcript="hel", is_final=False),
            TranscriptResult(transcript="hello world", is_final=True),
        ],
    )
    client = TestClient(app)

    with client.websocket_connect("/") as ws:
        ws.send_json(_chunk())
        first = ws.receive_json()
        second = ws.receive_json()

    assert first == {"transcript": "hel", "isFinal": False}
    assert second == {"transcript": "hello world", "isFinal": True}
    assert recognition_client.open_calls == 1


def test_malformed_messages_are_ignored() -> None:
    """Entrada invalida nao gera resposta nem derruba a sessao."""
    app, recognition_client = _make_app(
        scripted=[TranscriptResult(transcript="ok", is_final=True)],
    )
    client = TestClient(app)

    with client.websocket_connect("/") as ws:
        ws.send_text("not json at all")
        ws.send_json({"type": "nonsense"})
        ws.send_json({"type": "audio_chunk", "data": "@@@"})
        ws.send_json(_chunk())
        event = ws.receive_json()

    # A primeira mensagem recebida e a transcricao: nada foi enviado antes
    assert event == {"transcript": "ok", "isFinal": True}
    assert recognition_client.open_calls == 1


def test_disconnect_removes_session_and_releases_handles() -> None:
    app, recognition_client = _make_app(
        scripted=[TranscriptResult(transcript="hel", is_final=False)],
    )
    client = TestClient(app)

    with client.websocket_connect("/") as ws:
        ws.send_json(_chunk())
        ws.receive_json()
        assert len(app.state.registry) == 1

    assert len(app.state.registry) == 0
    assert recognition_client.last_handle.abort_calls == 1
    assert recognition_client.last_handle.is_closed is True


def test_recognition_failure_sends_error_and_closes() -> None:
    app, _ = _make_app(scripted=[RecognitionFailure(message="boom", code="UNAVAILABLE")])
    client = TestClient(app)

    with client.websocket_connect("/") as ws:
        ws.send_json(_chunk())
        error = ws.receive_json()
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()

    assert error == {"error": "Recognition service error: boom"}
    assert exc_info.value.code == 1011


def test_end_audio_keeps_connection_open_by_default() -> None:
    app, recognition_client = _make_app()
    client = TestClient(app)

    with client.websocket_connect("/") as ws:
        ws.send_json(_chunk())
        ws.send_json({"type": "end_audio"})
        ws.send_json(_chunk(b"\x02\x03 another"))
        ws.send_json({"type": "nonsense"})

    assert recognition_client.open_calls == 1


def test_shutdown_closes_recognition_client() -> None:
    app, recognition_client = _make_app(
        scripted=[TranscriptResult(transcript="hel", is_final=False)],
    )

    with TestClient(app) as client, client.websocket_connect("/") as ws:
        ws.send_json(_chunk())
        ws.receive_json()

    assert recognition_client.close_calls == 1
    assert len(app.state.registry) == 0
