"""WS / -- endpoint WebSocket do relay audio -> texto."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from voxrelay.logging import bind_connection, get_logger
from voxrelay.server.channel import WebSocketChannel
from voxrelay.server.ws_protocol import AudioChunkResult, EndAudioResult, dispatch_message
from voxrelay.session.relay import RelaySession

if TYPE_CHECKING:
    from voxrelay.session.registry import SessionRegistry

logger = get_logger("server.relay")

router = APIRouter()


def _create_session(
    websocket: WebSocket,
    connection_id: str,
    channel: WebSocketChannel,
) -> RelaySession:
    """Cria a RelaySession com os colaboradores do app.state e registra."""
    state = websocket.app.state
    registry: SessionRegistry = state.registry
    session = RelaySession(
        connection_id=connection_id,
        channel=channel,
        recognition_client=state.recognition_client,
        transcoder=state.transcoder,
        registry=registry,
        settings=state.settings.session,
    )
    registry.register(connection_id, session)
    return session


@router.websocket("/")
async def relay_endpoint(websocket: WebSocket) -> None:
    """Endpoint WebSocket de relay.

    Protocolo:
        1. Accept e atribuicao de connection_id (vinculado ao contexto de log).
        2. Primeira mensagem cria a RelaySession e a registra.
        3. audio_chunk -> session.handle_chunk(); end_audio -> session.handle_end_audio().
        4. Mensagens invalidas sao ignoradas (apenas log).
        5. Disconnect ou erro: session.stop() sempre, no finally.
    """
    connection_id = f"conn_{uuid.uuid4().hex[:12]}"
    client = websocket.client
    peer = f"{client.host}:{client.port}" if client is not None else None

    with bind_connection(connection_id):
        await _serve_connection(websocket, connection_id, peer)


async def _serve_connection(websocket: WebSocket, connection_id: str, peer: str | None) -> None:
    await websocket.accept()
    channel = WebSocketChannel(websocket, connection_id)
    logger.info("client_connected", peer=peer)

    session: RelaySession | None = None
    closed_reason = "client_disconnect"
    try:
        while True:
            message = await websocket.receive()

            if message.get("type") == "websocket.disconnect":
                channel.mark_closed()
                break

            if session is None:
                session = _create_session(websocket, connection_id, channel)

            result = dispatch_message(message)

            if isinstance(result, AudioChunkResult):
                logger.debug("audio_chunk_received", size_bytes=len(result.data))
                await session.handle_chunk(result.data)
            elif isinstance(result, EndAudioResult):
                await session.handle_end_audio()

            if session.is_closed:
                closed_reason = "session_closed"
                break

    except WebSocketDisconnect:
        channel.mark_closed()
        logger.info("client_disconnected")
    except Exception:
        closed_reason = "connection_error"
        logger.exception("connection_error")
    finally:
        if session is not None:
            await session.stop(closed_reason)
        else:
            await channel.close()

        logger.info("client_connection_finished", reason=closed_reason)
