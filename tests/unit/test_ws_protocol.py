"""Testes do dispatch de mensagens WebSocket do relay.

Mensagens invalidas devem ser ignoradas (None), nunca levantar exception.
"""

from __future__ import annotations

import base64
import json

import pytest

from voxrelay.server.models.envelopes import ErrorEnvelope, TranscriptEnvelope
from voxrelay.server.ws_protocol import (
    AudioChunkResult,
    EndAudioResult,
    dispatch_message,
    encode_envelope,
)


def _text(payload: object) -> dict[str, str]:
    return {"type": "websocket.receive", "text": json.dumps(payload)}


class TestDispatchValid:
    def test_audio_chunk_is_decoded(self) -> None:
        raw = b"\x00\x01\x02\x03 container"
        message = _text({"type": "audio_chunk", "data": base64.b64encode(raw).decode()})
        result = dispatch_message(message)
        assert isinstance(result, AudioChunkResult)
        assert result.data == raw

    @pytest.mark.parametrize(
        ("data", "expected"),
        [("AAE", b"\x00\x01"), ("AA", b"\x00"), ("AAE=", b"\x00\x01"), ("AAECAw", b"\x00\x01\x02\x03")],
    )
    def test_unpadded_base64_is_accepted(self, data: str, expected: bytes) -> None:
        result = dispatch_message(_text({"type": "audio_chunk", "data": data}))
        assert isinstance(result, AudioChunkResult)
        assert result.data == expected

    def test_end_audio(self) -> None:
        result = dispatch_message(_text({"type": "end_audio"}))
        assert isinstance(result, EndAudioResult)

    def test_extra_fields_are_ignored(self) -> None:
        result = dispatch_message(_text({"type": "end_audio", "reason": "mic_off"}))
        assert isinstance(result, EndAudioResult)

    def test_binary_frame_with_json_text(self) -> None:
        payload = json.dumps({"type": "end_audio"}).encode("utf-8")
        result = dispatch_message({"type": "websocket.receive", "bytes": payload})
        assert isinstance(result, EndAudioResult)


class TestDispatchIgnored:
    def test_unknown_type(self) -> None:
        assert dispatch_message(_text({"type": "nonsense"})) is None

    def test_malformed_json(self) -> None:
        assert dispatch_message({"type": "websocket.receive", "text": "{not json"}) is None

    def test_non_object_json(self) -> None:
        assert dispatch_message(_text([1, 2, 3])) is None

    def test_missing_type(self) -> None:
        assert dispatch_message(_text({"data": "AAAA"})) is None

    def test_non_string_type(self) -> None:
        assert dispatch_message(_text({"type": 42})) is None

    def test_single_trailing_base64_char(self) -> None:
        assert dispatch_message(_text({"type": "audio_chunk", "data": "AAAAA"})) is None

    def test_invalid_base64(self) -> None:
        assert dispatch_message(_text({"type": "audio_chunk", "data": "@@not-base64@@"})) is None

    def test_empty_data(self) -> None:
        assert dispatch_message(_text({"type": "audio_chunk", "data": ""})) is None

    def test_missing_data(self) -> None:
        assert dispatch_message(_text({"type": "audio_chunk"})) is None

    def test_non_string_data(self) -> None:
        assert dispatch_message(_text({"type": "audio_chunk", "data": [1, 2]})) is None

    def test_non_utf8_binary_frame(self) -> None:
        assert dispatch_message({"type": "websocket.receive", "bytes": b"\xff\xfe\x00"}) is None

    def test_empty_message(self) -> None:
        assert dispatch_message({"type": "websocket.receive"}) is None


class TestEncodeEnvelope:
    def test_transcript_uses_wire_names(self) -> None:
        envelope = TranscriptEnvelope(transcript="hello world", is_final=True)
        assert encode_envelope(envelope) == {"transcript": "hello world", "isFinal": True}

    def test_transcript_accepts_alias(self) -> None:
        envelope = TranscriptEnvelope.model_validate({"transcript": "hel", "isFinal": False})
        assert envelope.is_final is False

    def test_error(self) -> None:
        envelope = ErrorEnvelope(error="Recognition service error: boom")
        assert encode_envelope(envelope) == {"error": "Recognition service error: boom"}
