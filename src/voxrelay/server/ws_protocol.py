"""Protocol handler para dispatch de mensagens WebSocket.

Recebe mensagens raw do WebSocket (dict com 'bytes' ou 'text') e retorna
um resultado tipado: chunk de audio, end_audio, ou None quando a mensagem
deve ser ignorada. Entrada malformada nunca altera o estado da sessao e
nunca gera resposta ao cliente: apenas log.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from voxrelay.logging import get_logger
from voxrelay.server.models.envelopes import AudioChunkCommand, EndAudioCommand

if TYPE_CHECKING:
    from collections.abc import Mapping

    from voxrelay.server.models.envelopes import ClientCommand, ServerEnvelope

logger = get_logger("server.ws_protocol")

# Mapeamento de type -> classe de comando
_COMMAND_TYPES: dict[str, type[ClientCommand]] = {
    "audio_chunk": AudioChunkCommand,
    "end_audio": EndAudioCommand,
}


@dataclass(frozen=True, slots=True)
class AudioChunkResult:
    """Resultado de dispatch: chunk de audio decodificado."""

    data: bytes


@dataclass(frozen=True, slots=True)
class EndAudioResult:
    """Resultado de dispatch: cliente sinalizou fim do audio."""


# Union type para resultado de dispatch
DispatchResult = AudioChunkResult | EndAudioResult


def dispatch_message(message: Mapping[str, Any]) -> DispatchResult | None:
    """Dispatch de mensagem WebSocket raw para resultado tipado.

    Frames binarios sao tratados como texto UTF-8 (o envelope e sempre JSON).
    O connection_id dos logs vem do contexto vinculado pela rota.

    Args:
        message: Dict raw do ``websocket.receive()`` com chaves 'bytes' ou 'text'.

    Returns:
        ``AudioChunkResult``, ``EndAudioResult``, ou ``None`` se a mensagem
        deve ser ignorada.
    """
    raw_text = message.get("text")
    if raw_text is None:
        raw_bytes = message.get("bytes")
        if raw_bytes is None:
            return None
        try:
            raw_text = bytes(raw_bytes).decode("utf-8")
        except (UnicodeDecodeError, TypeError):
            logger.warning(
                "non_text_frame_ignored",
                size_bytes=len(raw_bytes) if isinstance(raw_bytes, bytes) else None,
            )
            return None

    command = _parse_command(str(raw_text))
    if command is None:
        return None
    if isinstance(command, AudioChunkCommand):
        return AudioChunkResult(data=command.data)
    return EndAudioResult()


def _parse_command(raw_text: str) -> ClientCommand | None:
    """Parseia texto JSON em um comando tipado.

    Fluxo:
        1. Deserializa JSON.
        2. Extrai campo ``type``.
        3. Valida contra o modelo Pydantic correto.
    """
    # 1. Parse JSON
    try:
        data = json.loads(raw_text)
    except (json.JSONDecodeError, ValueError) as exc:
        logger.warning(
            "malformed_json",
            error=str(exc),
            raw=raw_text[:200],
        )
        return None

    if not isinstance(data, dict):
        logger.warning(
            "invalid_envelope_format",
            got=type(data).__name__,
        )
        return None

    # 2. Extrair type
    command_type = data.get("type")
    if command_type is None:
        logger.warning(
            "missing_type_field",
            data_keys=list(data.keys()),
        )
        return None

    # 3. Lookup command class
    command_class = _COMMAND_TYPES.get(command_type) if isinstance(command_type, str) else None
    if command_class is None:
        logger.info(
            "unknown_message_type",
            message_type=command_type,
        )
        return None

    # 4. Validate with Pydantic model
    try:
        return command_class.model_validate(data)
    except Exception as exc:
        logger.warning(
            "envelope_validation_error",
            message_type=command_type,
            error=str(exc),
        )
        return None


def encode_envelope(envelope: ServerEnvelope) -> dict[str, Any]:
    """Serializa envelope server->client no formato do wire protocol."""
    return envelope.model_dump(mode="json", by_alias=True)
