"""FastAPI application factory para o VoxRelay."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

import voxrelay
from voxrelay.config.settings import RelaySettings
from voxrelay.logging import get_logger
from voxrelay.recognition.google_speech import GoogleSpeechClient
from voxrelay.server.routes import health, relay
from voxrelay.session.registry import SessionRegistry
from voxrelay.transcoding.ffmpeg import FFmpegTranscoder

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from voxrelay.recognition.interface import RecognitionClient
    from voxrelay.transcoding.interface import Transcoder

logger = get_logger("server.app")


def create_app(
    settings: RelaySettings | None = None,
    recognition_client: RecognitionClient | None = None,
    transcoder: Transcoder | None = None,
) -> FastAPI:
    """Cria a aplicacao FastAPI.

    Args:
        settings: Configuracao do relay (default: RelaySettings()).
        recognition_client: Cliente de reconhecimento (default: Google Speech
            com as credenciais de ``settings``).
        transcoder: Adapter de conversao (default: ffmpeg).

    Returns:
        FastAPI application configurada.
    """
    settings = settings or RelaySettings()
    if recognition_client is None:
        recognition_client = GoogleSpeechClient(
            settings.recognition,
            credentials_path=settings.credentials_path,
        )
    if transcoder is None:
        transcoder = FFmpegTranscoder(settings.transcoder)

    registry = SessionRegistry()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "relay_starting",
            host=settings.host,
            port=settings.port,
            end_audio_policy=settings.session.end_audio_policy.value,
        )
        try:
            yield
        finally:
            stopped = await registry.stop_all("server_shutdown")
            await recognition_client.close()
            logger.info("relay_stopped", sessions_stopped=stopped)

    app = FastAPI(
        title="VoxRelay",
        version=voxrelay.__version__,
        description="Relay WebSocket de audio para transcricao em tempo real",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.recognition_client = recognition_client
    app.state.transcoder = transcoder
    app.state.registry = registry

    app.include_router(health.router)
    app.include_router(relay.router)

    return app
