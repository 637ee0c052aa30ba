"""Testes do cliente de streaming do Google Speech com SpeechAsyncClient mockado."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from google.api_core import exceptions as core_exceptions
from google.cloud import speech

from voxrelay._types import RecognitionFailure, RecognitionStreamEnded, TranscriptResult
from voxrelay.config.settings import RecognitionSettings
from voxrelay.exceptions import RecognitionStreamError
from voxrelay.recognition.google_speech import GoogleRecognitionHandle, GoogleSpeechClient

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from voxrelay._types import RecognitionEvent


class _AsyncIterFromList:
    """Async iterator que retorna itens de uma lista."""

    def __init__(self, items: list[Any]) -> None:
        self._items = list(items)

    def __aiter__(self) -> _AsyncIterFromList:
        return self

    async def __anext__(self) -> Any:
        if not self._items:
            raise StopAsyncIteration
        return self._items.pop(0)


def _transcript(text: str, is_final: bool) -> speech.StreamingRecognizeResponse:
    return speech.StreamingRecognizeResponse(
        results=[
            speech.StreamingRecognitionResult(
                alternatives=[speech.SpeechRecognitionAlternative(transcript=text)],
                is_final=is_final,
            ),
        ],
    )


def _make_handle(client: MagicMock) -> GoogleRecognitionHandle:
    streaming_config = speech.StreamingRecognitionConfig(interim_results=True)
    handle = GoogleRecognitionHandle("conn_test", client, streaming_config)
    handle.start()
    return handle


async def _collect(events: AsyncIterator[RecognitionEvent]) -> list[RecognitionEvent]:
    return [event async for event in events]


class TestHandleEvents:
    async def test_results_in_order_then_stream_ended(self) -> None:
        client = MagicMock()
        client.streaming_recognize = AsyncMock(
            return_value=_AsyncIterFromList(
                [
                    _transcript("hel", False),
                    speech.StreamingRecognizeResponse(),
                    _transcript("hello world", True),
                ],
            ),
        )
        handle = _make_handle(client)

        events = await asyncio.wait_for(_collect(handle.events()), timeout=1.0)

        assert events == [
            TranscriptResult(transcript="hel", is_final=False),
            TranscriptResult(transcript="hello world", is_final=True),
            RecognitionStreamEnded(),
        ]
        assert handle.is_closed is True

    async def test_api_error_becomes_failure_event(self) -> None:
        client = MagicMock()
        client.streaming_recognize = AsyncMock(
            side_effect=core_exceptions.ServiceUnavailable("speech backend down"),
        )
        handle = _make_handle(client)

        events = await asyncio.wait_for(_collect(handle.events()), timeout=1.0)

        assert len(events) == 1
        failure = events[0]
        assert isinstance(failure, RecognitionFailure)
        assert failure.code == "UNAVAILABLE"
        assert "speech backend down" in failure.message

    async def test_error_status_in_response_ends_stream(self) -> None:
        client = MagicMock()
        client.streaming_recognize = AsyncMock(
            return_value=_AsyncIterFromList(
                [
                    _transcript("hel", False),
                    speech.StreamingRecognizeResponse(error={"code": 11, "message": "timeout"}),
                    _transcript("never", True),
                ],
            ),
        )
        handle = _make_handle(client)

        events = await asyncio.wait_for(_collect(handle.events()), timeout=1.0)

        assert events == [
            TranscriptResult(transcript="hel", is_final=False),
            RecognitionFailure(message="timeout", code="11"),
        ]


class TestHandleRequests:
    async def test_config_first_then_audio(self) -> None:
        collected: list[speech.StreamingRecognizeRequest] = []

        async def _streaming_recognize(requests: Any) -> _AsyncIterFromList:
            async for request in requests:
                collected.append(request)
            return _AsyncIterFromList([])

        client = MagicMock()
        client.streaming_recognize = _streaming_recognize
        handle = _make_handle(client)

        handle.write(b"\x01\x02")
        handle.write(b"\x03\x04")
        await handle.close()

        assert len(collected) == 3
        assert collected[0].streaming_config.interim_results is True
        assert collected[1].audio_content == b"\x01\x02"
        assert collected[2].audio_content == b"\x03\x04"
        assert handle.is_closed is True

    async def test_write_after_close_is_noop(self) -> None:
        client = MagicMock()
        client.streaming_recognize = AsyncMock(return_value=_AsyncIterFromList([]))
        handle = _make_handle(client)

        await handle.close()
        handle.write(b"\x00\x00")
        await handle.close()

        assert handle.is_closed is True


class TestHandleAbort:
    async def test_abort_cancels_stream_and_releases_consumers(self) -> None:
        started = asyncio.Event()

        async def _hang(requests: Any) -> _AsyncIterFromList:
            started.set()
            await asyncio.Event().wait()
            return _AsyncIterFromList([])

        client = MagicMock()
        client.streaming_recognize = _hang
        handle = _make_handle(client)
        await asyncio.wait_for(started.wait(), timeout=1.0)

        consumer = asyncio.create_task(_collect(handle.events()))
        await handle.abort()
        await handle.abort()

        assert handle.is_closed is True
        assert await asyncio.wait_for(consumer, timeout=1.0) == []


class TestGoogleSpeechClient:
    async def test_open_starts_handle_with_shared_config(self) -> None:
        client = MagicMock()
        client.streaming_recognize = AsyncMock(return_value=_AsyncIterFromList([]))
        speech_client = GoogleSpeechClient(RecognitionSettings(), client=client)

        handle = await speech_client.open("conn_1")
        events = await asyncio.wait_for(_collect(handle.events()), timeout=1.0)

        assert handle.session_id == "conn_1"
        assert events == [RecognitionStreamEnded()]
        assert speech_client.streaming_config.config.sample_rate_hertz == 16000

    async def test_open_wraps_client_creation_error(self, tmp_path: Any) -> None:
        speech_client = GoogleSpeechClient(
            RecognitionSettings(),
            credentials_path=tmp_path / "missing.json",
        )
        with patch.object(
            speech.SpeechAsyncClient,
            "from_service_account_file",
            side_effect=FileNotFoundError("missing.json"),
        ):
            with pytest.raises(RecognitionStreamError) as exc_info:
                await speech_client.open("conn_2")

        assert exc_info.value.session_id == "conn_2"

    async def test_close_closes_transport(self) -> None:
        client = MagicMock()
        client.transport.close = AsyncMock()
        speech_client = GoogleSpeechClient(RecognitionSettings(), client=client)

        await speech_client.close()
        await speech_client.close()

        client.transport.close.assert_awaited_once()
