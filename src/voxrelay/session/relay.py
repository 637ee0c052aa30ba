"""RelaySession — sessao de relay audio -> texto de uma conexao.

Coordena o fluxo: chunk do cliente -> ffmpeg -> stream de reconhecimento ->
transcricao de volta ao cliente. Cada conexao WebSocket possui uma instancia
de RelaySession, dona exclusiva dos seus handles.

Maquina de estados: IDLE -> STREAMING -> CLOSED.

Regras:
- No maximo um job de conversao vivo por sessao (PreemptiveSlot): um chunk
  novo cancela o anterior e aguarda sua finalizacao antes de iniciar.
- O stream de reconhecimento e aberto uma unica vez, no primeiro chunk, e
  reutilizado ate o fim da sessao.
- Transcricoes sao repassadas na ordem em que o reconhecimento as emite.
- stop() e o unico caminho de teardown e e idempotente.
- Sessao CLOSED sempre fecha a conexao e sai do registry.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import TYPE_CHECKING

from voxrelay._types import (
    EndAudioPolicy,
    RecognitionFailure,
    SessionState,
    TranscodeOutcome,
    TranscriptResult,
)
from voxrelay.exceptions import InvalidTransitionError, RecognitionStreamError, SessionClosedError
from voxrelay.logging import get_logger
from voxrelay.server.models.envelopes import ErrorEnvelope, TranscriptEnvelope
from voxrelay.session.metrics import (
    HAS_METRICS,
    relay_recognition_errors_total,
    relay_session_duration_seconds,
    relay_transcode_failures_total,
    relay_transcoder_preemptions_total,
    relay_transcripts_total,
)
from voxrelay.session.slot import PreemptiveSlot
from voxrelay.session.state_machine import SessionStateMachine
from voxrelay.transcoding.ffmpeg import TranscodeJob

if TYPE_CHECKING:
    import concurrent.futures
    from collections.abc import Callable

    from voxrelay.config.settings import SessionSettings
    from voxrelay.recognition.interface import RecognitionClient, RecognitionHandle
    from voxrelay.server.channel import ClientChannel
    from voxrelay.session.registry import SessionRegistry
    from voxrelay.transcoding.interface import Transcoder

logger = get_logger("session.relay")

# Close codes WebSocket (RFC 6455)
CLOSE_NORMAL = 1000
CLOSE_INTERNAL_ERROR = 1011


class RelaySession:
    """Sessao de relay para uma conexao.

    Deve ser criada dentro do event loop que atende a conexao.

    Args:
        connection_id: Identidade da conexao (tambem usada como session_id).
        channel: Canal com o cliente (envio de envelopes e fechamento).
        recognition_client: Fabrica de streams de reconhecimento.
        transcoder: Adapter de conversao de audio.
        registry: Registry de conexoes (a sessao se remove no teardown).
        settings: Politicas da sessao (end_audio, idle timeout).
        clock: Funcao monotonic para a state machine (testes).
    """

    def __init__(
        self,
        connection_id: str,
        channel: ClientChannel,
        recognition_client: RecognitionClient,
        transcoder: Transcoder,
        registry: SessionRegistry,
        settings: SessionSettings,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._connection_id = connection_id
        self._channel = channel
        self._recognition_client = recognition_client
        self._transcoder = transcoder
        self._registry = registry
        self._settings = settings
        self._loop = asyncio.get_running_loop()

        self._lock = asyncio.Lock()
        self._state_machine = SessionStateMachine(
            on_enter={SessionState.CLOSED: self._on_closed},
            clock=clock,
        )
        self._recognition: RecognitionHandle | None = None
        self._transcode_slot = PreemptiveSlot(name=f"transcode:{connection_id}")
        self._relay_task: asyncio.Task[None] | None = None
        self._idle_task: asyncio.Task[None] | None = None
        self._job_counter = 0

        # Setado antes de qualquer await em stop(): primeiro caller vence
        self._stopping = False
        self._closed = asyncio.Event()
        self._started_at = time.monotonic()

        logger.info("session_created", connection_id=connection_id)

    @property
    def connection_id(self) -> str:
        return self._connection_id

    @property
    def state(self) -> SessionState:
        return self._state_machine.state

    @property
    def is_closed(self) -> bool:
        return self._state_machine.is_terminal

    @property
    def recognition_handle(self) -> RecognitionHandle | None:
        """Handle de reconhecimento ativo (existe apenas em STREAMING)."""
        return self._recognition

    @property
    def transcoder_running(self) -> bool:
        return self._transcode_slot.occupied

    @property
    def preemptions(self) -> int:
        """Conversoes interrompidas por um chunk mais novo."""
        return self._transcode_slot.preemptions

    @property
    def idle_timer_armed(self) -> bool:
        return self._idle_task is not None and not self._idle_task.done()

    async def handle_chunk(self, data: bytes) -> None:
        """Processa um chunk de audio do cliente.

        IDLE: abre o stream de reconhecimento e transita para STREAMING.
        STREAMING: preempta a conversao em andamento (se houver) e inicia
        a conversao do chunk novo, ligada ao stream existente. Se o servico
        ja encerrou o stream, a sessao falha (ErrorEnvelope + teardown).
        CLOSED: no-op.
        """
        open_error: RecognitionStreamError | None = None
        stream_ended = False

        async with self._lock:
            if self._stopping:
                logger.debug(
                    "chunk_ignored_session_closed",
                    connection_id=self._connection_id,
                    size_bytes=len(data),
                )
                return

            self._disarm_idle_timer()

            if self._state_machine.state == SessionState.IDLE:
                try:
                    self._recognition = await self._recognition_client.open(self._connection_id)
                except RecognitionStreamError as exc:
                    open_error = exc
                else:
                    self._relay_task = asyncio.create_task(
                        self._relay_events(self._recognition),
                    )
                    self._transition(SessionState.STREAMING)

            if self._recognition is not None and self._recognition.is_closed:
                # Servico encerrou o stream: audio novo nao tem destino
                stream_ended = True
            elif open_error is None and not self._stopping:
                await self._start_transcode(data)

        # Fora do lock: stop() adquire o lock
        if open_error is not None:
            await self._fail(open_error.reason, reason="recognition_open_failed")
        elif stream_ended:
            await self._fail("Recognition stream already ended", reason="recognition_stream_ended")

    async def handle_end_audio(self) -> None:
        """Cliente sinalizou fim do audio.

        KEEP_OPEN mantem o stream aberto e arma o idle timer (se configurado).
        ABORT encerra a sessao imediatamente.
        """
        if self._stopping:
            return

        policy = self._settings.end_audio_policy
        if self._state_machine.state == SessionState.IDLE:
            logger.info(
                "end_audio_before_audio",
                connection_id=self._connection_id,
                policy=policy.value,
            )
            return

        logger.info(
            "end_audio_received",
            connection_id=self._connection_id,
            policy=policy.value,
            idle_timeout_s=self._settings.end_audio_idle_timeout_s,
        )

        if policy == EndAudioPolicy.ABORT:
            await self.stop("end_audio")
            return

        async with self._lock:
            if not self._stopping:
                self._arm_idle_timer()

    async def stop(self, reason: str, close_code: int = CLOSE_NORMAL) -> bool:
        """Encerra a sessao e libera todos os handles.

        Mata a conversao em andamento, aborta o stream de reconhecimento,
        remove a sessao do registry e fecha a conexao. Idempotente: chamadas
        seguintes (ou concorrentes) aguardam o teardown em curso e retornam
        False.

        Args:
            reason: Motivo do encerramento (logging e close reason).
            close_code: Close code enviado ao cliente.

        Returns:
            True se esta chamada executou o teardown.
        """
        if self._stopping:
            await self._closed.wait()
            return False
        self._stopping = True

        try:
            current = asyncio.current_task()
            idle_task = self._idle_task
            self._idle_task = None
            if idle_task is not None and idle_task is not current:
                idle_task.cancel()

            async with self._lock:
                await self._teardown(reason, close_code, current)
        finally:
            self._closed.set()

        logger.info(
            "session_closed",
            connection_id=self._connection_id,
            reason=reason,
            duration_ms=int((time.monotonic() - self._started_at) * 1000),
            preemptions=self._transcode_slot.preemptions,
        )
        return True

    def stop_threadsafe(self, reason: str) -> concurrent.futures.Future[bool]:
        """Agenda stop() no loop da sessao a partir de outra thread.

        Raises:
            SessionClosedError: Se o loop da sessao ja foi encerrado.
        """
        if self._loop.is_closed():
            raise SessionClosedError(self._connection_id)
        return asyncio.run_coroutine_threadsafe(self.stop(reason), self._loop)

    async def _teardown(
        self,
        reason: str,
        close_code: int,
        current: asyncio.Task[object] | None,
    ) -> None:
        if await self._transcode_slot.clear():
            logger.debug("transcoder_killed", connection_id=self._connection_id)

        recognition = self._recognition
        self._recognition = None
        if recognition is not None:
            await recognition.abort()
            logger.debug("recognition_aborted", connection_id=self._connection_id)

        relay_task = self._relay_task
        self._relay_task = None
        if relay_task is not None and relay_task is not current and not relay_task.done():
            relay_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await relay_task

        with contextlib.suppress(InvalidTransitionError):
            self._transition(SessionState.CLOSED)

        self._registry.unregister(self._connection_id, self)
        await self._channel.close(code=close_code, reason=reason)

    async def _start_transcode(self, data: bytes) -> None:
        """Inicia a conversao do chunk, preemptando a anterior."""
        recognition = self._recognition
        if recognition is None:
            return

        self._job_counter += 1
        job = TranscodeJob(
            job_id=f"{self._connection_id}:{self._job_counter}",
            transcoder=self._transcoder,
            data=data,
            sink=recognition.write,
            on_finished=self._on_transcode_finished,
        )
        _, preempted = await self._transcode_slot.replace(job.run)
        if preempted:
            logger.info(
                "transcoder_preempted",
                connection_id=self._connection_id,
                job_id=job.job_id,
            )
            if HAS_METRICS and relay_transcoder_preemptions_total is not None:
                relay_transcoder_preemptions_total.inc()

    def _on_transcode_finished(self, job: TranscodeJob) -> None:
        # Falha de conversao e recuperavel: sessao segue em STREAMING
        if job.outcome == TranscodeOutcome.FAILED:
            if HAS_METRICS and relay_transcode_failures_total is not None:
                relay_transcode_failures_total.inc()

    async def _relay_events(self, recognition: RecognitionHandle) -> None:
        """Consome o canal de eventos do reconhecimento, em ordem."""
        async for event in recognition.events():
            if isinstance(event, TranscriptResult):
                if not await self._relay_transcript(event):
                    logger.info("client_channel_lost", connection_id=self._connection_id)
                    await self.stop("client_gone")
                    return
            elif isinstance(event, RecognitionFailure):
                if HAS_METRICS and relay_recognition_errors_total is not None:
                    relay_recognition_errors_total.inc()
                await self._fail(event.message, reason="recognition_error")
                return
            else:
                logger.info("recognition_stream_ended", connection_id=self._connection_id)

    async def _relay_transcript(self, result: TranscriptResult) -> bool:
        """Envia a transcricao ao cliente. False se o canal nao esta disponivel."""
        if self._stopping:
            return True
        if not self._channel.is_open:
            return False
        sent = await self._channel.send(
            TranscriptEnvelope(transcript=result.transcript, is_final=result.is_final),
        )
        if sent and HAS_METRICS and relay_transcripts_total is not None:
            relay_transcripts_total.labels(kind="final" if result.is_final else "partial").inc()
        return sent

    async def _fail(self, message: str, reason: str) -> None:
        """Falha fatal do reconhecimento: notifica o cliente e encerra."""
        logger.error(
            "session_recognition_failed",
            connection_id=self._connection_id,
            reason=reason,
            error=message,
        )
        if not self._stopping and self._channel.is_open:
            await self._channel.send(ErrorEnvelope(error=f"Recognition service error: {message}"))
        await self.stop(reason, close_code=CLOSE_INTERNAL_ERROR)

    def _arm_idle_timer(self) -> None:
        timeout_s = self._settings.end_audio_idle_timeout_s
        if timeout_s is None:
            return
        self._disarm_idle_timer()
        self._idle_task = asyncio.create_task(self._idle_timeout(timeout_s))
        logger.debug(
            "idle_timer_armed",
            connection_id=self._connection_id,
            timeout_s=timeout_s,
        )

    def _disarm_idle_timer(self) -> None:
        task = self._idle_task
        self._idle_task = None
        if task is not None and not task.done():
            task.cancel()
            logger.debug("idle_timer_disarmed", connection_id=self._connection_id)

    async def _idle_timeout(self, timeout_s: float) -> None:
        await asyncio.sleep(timeout_s)
        # Desacopla do slot do timer: um chunk concorrente nao cancela o stop
        self._idle_task = None
        logger.info(
            "end_audio_idle_timeout",
            connection_id=self._connection_id,
            timeout_s=timeout_s,
        )
        await self.stop("end_audio_idle_timeout")

    def _transition(self, target: SessionState) -> None:
        previous = self._state_machine.state
        elapsed_ms = self._state_machine.transition(target)
        logger.info(
            "session_state_changed",
            connection_id=self._connection_id,
            from_state=previous.value,
            to_state=target.value,
            elapsed_in_previous_ms=elapsed_ms,
        )

    def _on_closed(self, _elapsed_ms: int) -> None:
        if HAS_METRICS and relay_session_duration_seconds is not None:
            relay_session_duration_seconds.observe(time.monotonic() - self._started_at)
