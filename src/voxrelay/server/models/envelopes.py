"""Modelos Pydantic para o protocolo WebSocket do relay.

Entrada (client->server), discriminada pelo campo ``type``:
    {"type": "audio_chunk", "data": "<base64>"}
    {"type": "end_audio"}

Saida (server->client), sem discriminador:
    {"transcript": "<texto>", "isFinal": <bool>}
    {"error": "<mensagem>"}
"""

from __future__ import annotations

import base64
import binascii
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------------------------------------------------------------------------
# Client -> Server commands
# ---------------------------------------------------------------------------


class AudioChunkCommand(BaseModel):
    """Chunk de audio codificado em base64 (container arbitrario)."""

    model_config = ConfigDict(frozen=True)

    type: Literal["audio_chunk"] = "audio_chunk"
    data: bytes = Field(min_length=1)

    @field_validator("data", mode="before")
    @classmethod
    def decode_base64(cls, v: Any) -> bytes:
        if not isinstance(v, str) or not v:
            msg = "data must be a non-empty base64 string"
            raise ValueError(msg)
        # Padding opcional: clientes costumam omitir os '=' finais
        encoded = v.rstrip("=")
        encoded += "=" * (-len(encoded) % 4)
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            msg = f"data is not valid base64: {exc}"
            raise ValueError(msg) from exc


class EndAudioCommand(BaseModel):
    """Cliente parou de enviar audio (por enquanto)."""

    model_config = ConfigDict(frozen=True)

    type: Literal["end_audio"] = "end_audio"


# ---------------------------------------------------------------------------
# Server -> Client envelopes
# ---------------------------------------------------------------------------


class TranscriptEnvelope(BaseModel):
    """Transcricao parcial ou final."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    transcript: str
    is_final: bool = Field(alias="isFinal")


class ErrorEnvelope(BaseModel):
    """Erro fatal ou relevante para a sessao."""

    model_config = ConfigDict(frozen=True)

    error: str


# ---------------------------------------------------------------------------
# Union types for dispatch
# ---------------------------------------------------------------------------

ClientCommand = AudioChunkCommand | EndAudioCommand

ServerEnvelope = TranscriptEnvelope | ErrorEnvelope
