"""Cliente de streaming para o Google Cloud Speech-to-Text.

Cada sessao abre um stream bidirecional (``streaming_recognize``). O audio
entra por uma fila alimentada por write(); uma task de background consome as
respostas e as publica como RecognitionEvent num canal explicito
(asyncio.Queue), preservando a ordem de emissao do servico.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

from google.api_core import exceptions as core_exceptions
from google.cloud import speech

from voxrelay._types import RecognitionFailure, RecognitionStreamEnded
from voxrelay.exceptions import RecognitionStreamError
from voxrelay.logging import get_logger
from voxrelay.recognition.converters import build_streaming_config, response_to_event
from voxrelay.recognition.interface import RecognitionClient, RecognitionHandle

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from voxrelay._types import RecognitionEvent
    from voxrelay.config.settings import RecognitionSettings

logger = get_logger("recognition.google")

# Tempo maximo aguardando o servico finalizar apos close() graceful
_CLOSE_TIMEOUT_S = 5.0

# Sentinela: fim do audio (fila de entrada) / fim do canal (fila de eventos)
_END = None


class GoogleRecognitionHandle(RecognitionHandle):
    """Stream bidirecional com o Google Speech para uma sessao.

    Lifecycle tipico:
        1. GoogleSpeechClient.open() cria o handle e inicia a task de stream
        2. write() enfileira PCM para o servico
        3. events() entrega TranscriptResult / RecognitionFailure / RecognitionStreamEnded
        4. close() (graceful) ou abort() (imediato)
    """

    def __init__(
        self,
        session_id: str,
        client: speech.SpeechAsyncClient,
        streaming_config: speech.StreamingRecognitionConfig,
    ) -> None:
        self._session_id = session_id
        self._client = client
        self._streaming_config = streaming_config
        self._audio: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._events: asyncio.Queue[RecognitionEvent | None] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self._closing = False
        self._closed = False

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def is_closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Inicia a task de background que mantem o stream."""
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    def write(self, pcm_data: bytes) -> None:
        if self._closing or self._closed:
            return
        self._audio.put_nowait(pcm_data)

    async def events(self) -> AsyncIterator[RecognitionEvent]:
        while True:
            event = await self._events.get()
            if event is _END:
                return
            yield event
            if isinstance(event, (RecognitionFailure, RecognitionStreamEnded)):
                return

    async def close(self) -> None:
        if self._closing or self._closed:
            return
        self._closing = True
        self._audio.put_nowait(_END)

        task = self._task
        if task is None or task.done():
            self._finish()
            return
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=_CLOSE_TIMEOUT_S)
        except TimeoutError:
            logger.warning(
                "recognition_close_timeout",
                session_id=self._session_id,
                timeout_s=_CLOSE_TIMEOUT_S,
            )
            await self.abort()
        except asyncio.CancelledError:
            await self.abort()
            raise

    async def abort(self) -> None:
        if self._closed:
            return
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._finish()
        logger.debug("recognition_stream_aborted", session_id=self._session_id)

    async def _requests(self) -> AsyncIterator[speech.StreamingRecognizeRequest]:
        # Primeiro request carrega apenas a configuracao
        yield speech.StreamingRecognizeRequest(streaming_config=self._streaming_config)
        while True:
            chunk = await self._audio.get()
            if chunk is _END:
                return
            yield speech.StreamingRecognizeRequest(audio_content=chunk)

    async def _run(self) -> None:
        try:
            stream = await self._client.streaming_recognize(requests=self._requests())
            async for response in stream:
                event = response_to_event(response)
                if event is None:
                    continue
                self._events.put_nowait(event)
                if isinstance(event, RecognitionFailure):
                    return
            self._events.put_nowait(RecognitionStreamEnded())
        except asyncio.CancelledError:
            raise
        except core_exceptions.GoogleAPICallError as exc:
            grpc_code = exc.grpc_status_code.name if exc.grpc_status_code is not None else None
            logger.error(
                "recognition_stream_error",
                session_id=self._session_id,
                grpc_code=grpc_code or "UNKNOWN",
                error=exc.message,
            )
            self._events.put_nowait(
                RecognitionFailure(message=str(exc.message), code=grpc_code),
            )
        except Exception as exc:
            logger.exception("recognition_unexpected_error", session_id=self._session_id)
            self._events.put_nowait(RecognitionFailure(message=str(exc)))
        finally:
            self._finish()

    def _finish(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._closing = True
        # Libera consumidores de events() mesmo apos abort
        self._events.put_nowait(_END)


class GoogleSpeechClient(RecognitionClient):
    """Cliente do Google Speech com configuracao fixa no escopo do processo.

    O SpeechAsyncClient e criado sob demanda dentro do event loop (o canal
    gRPC assincrono precisa de um loop ativo) e compartilhado por todas as
    sessoes.

    Args:
        settings: Configuracao de reconhecimento.
        credentials_path: Arquivo JSON de service account (None = credenciais
            padrao do ambiente).
        client: SpeechAsyncClient pre-construido (testes).
    """

    def __init__(
        self,
        settings: RecognitionSettings,
        credentials_path: Path | None = None,
        client: speech.SpeechAsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._credentials_path = credentials_path
        self._client = client
        self._streaming_config = build_streaming_config(settings)

    @property
    def streaming_config(self) -> speech.StreamingRecognitionConfig:
        return self._streaming_config

    def _get_client(self) -> speech.SpeechAsyncClient:
        if self._client is None:
            if self._credentials_path is not None:
                self._client = speech.SpeechAsyncClient.from_service_account_file(
                    str(self._credentials_path),
                )
            else:
                self._client = speech.SpeechAsyncClient()
            logger.info(
                "speech_client_created",
                language=self._settings.language_code,
                model=self._settings.model,
            )
        return self._client

    async def open(self, session_id: str) -> GoogleRecognitionHandle:
        try:
            client = self._get_client()
        except Exception as exc:
            raise RecognitionStreamError(session_id, str(exc)) from exc

        handle = GoogleRecognitionHandle(
            session_id=session_id,
            client=client,
            streaming_config=self._streaming_config,
        )
        handle.start()
        logger.info("recognition_stream_opened", session_id=session_id)
        return handle

    async def close(self) -> None:
        if self._client is None:
            return
        client = self._client
        self._client = None
        with contextlib.suppress(Exception):
            await client.transport.close()
        logger.info("speech_client_closed")
