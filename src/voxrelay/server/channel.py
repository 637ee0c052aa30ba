"""Canal com o cliente: envio de envelopes e fechamento da conexao.

O envio nunca propaga exceptions para a sessao: falha de envio retorna
False e e tratada pelo caller como erro do canal do cliente.
"""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Protocol

from starlette.websockets import WebSocketState

from voxrelay.logging import get_logger
from voxrelay.server.ws_protocol import encode_envelope

if TYPE_CHECKING:
    from fastapi import WebSocket

    from voxrelay.server.models.envelopes import ServerEnvelope

logger = get_logger("server.channel")


class ClientChannel(Protocol):
    """Contrato do canal do cliente usado pela RelaySession."""

    @property
    def is_open(self) -> bool: ...

    async def send(self, envelope: ServerEnvelope) -> bool: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...


class WebSocketChannel:
    """ClientChannel sobre um WebSocket Starlette/FastAPI ja aceito."""

    def __init__(self, websocket: WebSocket, connection_id: str) -> None:
        self._websocket = websocket
        self._connection_id = connection_id
        self._closed = False

    @property
    def is_open(self) -> bool:
        return (
            not self._closed
            and self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    def mark_closed(self) -> None:
        """Registra que o cliente desconectou (nada mais sera enviado)."""
        self._closed = True

    async def send(self, envelope: ServerEnvelope) -> bool:
        if not self.is_open:
            logger.debug(
                "send_skipped_not_connected",
                connection_id=self._connection_id,
            )
            return False
        try:
            await self._websocket.send_json(encode_envelope(envelope))
        except Exception as exc:
            self._closed = True
            logger.warning(
                "send_failed",
                connection_id=self._connection_id,
                error=str(exc),
            )
            return False
        return True

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self._closed:
            return
        self._closed = True
        if self._websocket.application_state != WebSocketState.CONNECTED:
            return
        with contextlib.suppress(Exception):
            await self._websocket.close(code=code, reason=reason)
        logger.debug(
            "connection_closed_by_server",
            connection_id=self._connection_id,
            code=code,
            reason=reason,
        )
