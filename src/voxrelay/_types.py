"""Tipos fundamentais do VoxRelay.

Este modulo define enums, dataclasses e type aliases que sao usados
por todos os componentes do relay. Alteracoes aqui impactam o sistema inteiro.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# Formato fixo de saida do transcoder e de entrada do reconhecimento
TARGET_SAMPLE_RATE = 16000
TARGET_CHANNELS = 1
SAMPLE_WIDTH_BYTES = 2


class SessionState(Enum):
    """Estado de uma sessao de relay.

    Transicoes validas:
        IDLE -> STREAMING (primeiro chunk de audio)
        IDLE -> CLOSED (conexao encerrada antes de qualquer audio)
        STREAMING -> CLOSED (conexao encerrada, erro de reconhecimento, end_audio)
        CLOSED e terminal.
    """

    IDLE = "idle"
    STREAMING = "streaming"
    CLOSED = "closed"


class EndAudioPolicy(Enum):
    """Politica aplicada quando o cliente envia end_audio.

    - KEEP_OPEN: mantem o stream de reconhecimento aberto ate o idle timeout.
    - ABORT: aborta o stream de reconhecimento imediatamente.
    """

    KEEP_OPEN = "keep_open"
    ABORT = "abort"


class TranscodeOutcome(Enum):
    """Resultado final de um job de conversao."""

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class TranscriptResult:
    """Resultado de transcricao (parcial ou final) emitido pelo reconhecimento."""

    transcript: str
    is_final: bool


@dataclass(frozen=True, slots=True)
class RecognitionFailure:
    """Falha reportada pelo stream de reconhecimento. Fatal para a sessao."""

    message: str
    code: str | None = None


@dataclass(frozen=True, slots=True)
class RecognitionStreamEnded:
    """Stream de reconhecimento terminou. Apenas informativo."""


# Union type para eventos do canal de reconhecimento
RecognitionEvent = TranscriptResult | RecognitionFailure | RecognitionStreamEnded
