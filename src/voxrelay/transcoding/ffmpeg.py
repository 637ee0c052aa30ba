"""Adapter ffmpeg — converte chunks de audio para PCM 16kHz mono s16le.

Cada conversao roda um subprocesso ffmpeg isolado: o chunk e escrito em
stdin, stdout e repassado ao sink bloco a bloco. O processo e sempre
finalizado (kill + wait) ao sair, inclusive quando a coroutine e cancelada.
"""

from __future__ import annotations

import asyncio
import contextlib
from asyncio import subprocess as aio_subprocess
from typing import TYPE_CHECKING

from voxrelay._types import (
    SAMPLE_WIDTH_BYTES,
    TARGET_CHANNELS,
    TARGET_SAMPLE_RATE,
    TranscodeOutcome,
)
from voxrelay.exceptions import TranscodeError
from voxrelay.logging import get_logger
from voxrelay.transcoding.interface import Transcoder

if TYPE_CHECKING:
    from collections.abc import Callable

    from voxrelay.config.settings import TranscoderSettings

logger = get_logger("transcoding.ffmpeg")

# Quantidade de stderr mantida na mensagem de erro
_STDERR_TAIL_CHARS = 500


class FFmpegTranscoder(Transcoder):
    """Conversor baseado no binario ffmpeg.

    Args:
        settings: Configuracao do adapter (binario, formato de entrada, timeouts).
    """

    def __init__(self, settings: TranscoderSettings) -> None:
        self._settings = settings

    def build_command(self) -> list[str]:
        """Monta a linha de comando do ffmpeg."""
        command = [self._settings.ffmpeg_path, "-nostdin", "-loglevel", "error"]
        if self._settings.input_format:
            command.extend(["-f", self._settings.input_format])
        command.extend(
            [
                "-i",
                "pipe:0",
                "-acodec",
                "pcm_s16le",
                "-ar",
                str(TARGET_SAMPLE_RATE),
                "-ac",
                str(TARGET_CHANNELS),
                "-f",
                "s16le",
                "pipe:1",
            ]
        )
        return command

    async def convert(self, data: bytes, sink: Callable[[bytes], None]) -> int:
        command = self.build_command()
        try:
            process = await aio_subprocess.create_subprocess_exec(
                *command,
                stdin=aio_subprocess.PIPE,
                stdout=aio_subprocess.PIPE,
                stderr=aio_subprocess.PIPE,
            )
        except OSError as e:
            raise TranscodeError(None, f"Falha ao iniciar ffmpeg: {e}") from e

        logger.debug("ffmpeg_spawned", pid=process.pid, command=" ".join(command))

        feeder = asyncio.create_task(_feed_stdin(process, data))
        stderr_reader = asyncio.create_task(_read_stderr(process))
        try:
            produced = await self._pump_stdout(process, sink)
            await feeder
            return_code = await process.wait()
            stderr = await stderr_reader
            if return_code != 0:
                raise TranscodeError(return_code, stderr[-_STDERR_TAIL_CHARS:])
            return produced
        finally:
            for task in (feeder, stderr_reader):
                task.cancel()
            await asyncio.gather(feeder, stderr_reader, return_exceptions=True)
            await self._reap(process)

    async def _pump_stdout(
        self,
        process: aio_subprocess.Process,
        sink: Callable[[bytes], None],
    ) -> int:
        """Repassa stdout ao sink mantendo alinhamento de 16 bits."""
        assert process.stdout is not None
        produced = 0
        remainder = b""
        while True:
            chunk = await process.stdout.read(self._settings.read_chunk_bytes)
            if not chunk:
                break

            if remainder:
                chunk = remainder + chunk
                remainder = b""

            cut = len(chunk) % SAMPLE_WIDTH_BYTES
            if cut:
                remainder = chunk[-cut:]
                chunk = chunk[:-cut]

            if chunk:
                sink(chunk)
                produced += len(chunk)
        return produced

    async def _reap(self, process: aio_subprocess.Process) -> None:
        """Mata o processo se ainda vivo e aguarda saida (limitado por kill_timeout_s)."""
        if process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            logger.debug("ffmpeg_killed", pid=process.pid)
        try:
            await asyncio.wait_for(process.wait(), timeout=self._settings.kill_timeout_s)
        except TimeoutError:
            logger.warning(
                "ffmpeg_reap_timeout",
                pid=process.pid,
                timeout_s=self._settings.kill_timeout_s,
            )


async def _feed_stdin(process: aio_subprocess.Process, data: bytes) -> None:
    assert process.stdin is not None
    try:
        process.stdin.write(data)
        await process.stdin.drain()
    except (BrokenPipeError, ConnectionResetError):
        # ffmpeg saiu antes de consumir tudo; o exit code reporta o erro
        logger.debug("ffmpeg_stdin_closed_early", pid=process.pid)
    finally:
        with contextlib.suppress(BrokenPipeError, ConnectionResetError, RuntimeError):
            process.stdin.close()


async def _read_stderr(process: aio_subprocess.Process) -> str:
    assert process.stderr is not None
    raw = await process.stderr.read()
    return raw.decode(errors="ignore").strip()


class TranscodeJob:
    """Uma conversao em andamento, ligada a um unico chunk.

    Sinaliza start/end/error via log e ``outcome``, nunca propaga
    TranscodeError ao dono. Cancelamento (via task) e sempre seguro.

    Args:
        job_id: Identificador do job para logging.
        transcoder: Adapter de conversao.
        data: Bytes do chunk.
        sink: Destino do PCM (tipicamente ``RecognitionHandle.write``).
        on_finished: Callback chamado quando o job termina (qualquer outcome).
    """

    def __init__(
        self,
        job_id: str,
        transcoder: Transcoder,
        data: bytes,
        sink: Callable[[bytes], None],
        on_finished: Callable[[TranscodeJob], None] | None = None,
    ) -> None:
        self.job_id = job_id
        self._transcoder = transcoder
        self._data = data
        self._sink = sink
        self._on_finished = on_finished
        self.outcome: TranscodeOutcome | None = None
        self.error: TranscodeError | None = None
        self.bytes_out = 0

    async def run(self) -> TranscodeOutcome:
        logger.info("transcode_started", job_id=self.job_id, bytes_in=len(self._data))
        try:
            self.bytes_out = await self._transcoder.convert(self._data, self._sink)
        except asyncio.CancelledError:
            self.outcome = TranscodeOutcome.CANCELLED
            logger.info("transcode_cancelled", job_id=self.job_id)
            raise
        except TranscodeError as exc:
            self.outcome = TranscodeOutcome.FAILED
            self.error = exc
            logger.warning(
                "transcode_failed",
                job_id=self.job_id,
                exit_code=exc.exit_code,
                detail=exc.detail,
            )
        except Exception:
            self.outcome = TranscodeOutcome.FAILED
            logger.exception("transcode_unexpected_error", job_id=self.job_id)
        else:
            self.outcome = TranscodeOutcome.COMPLETED
            logger.info("transcode_finished", job_id=self.job_id, bytes_out=self.bytes_out)
        finally:
            if self._on_finished is not None:
                self._on_finished(self)
        return self.outcome
