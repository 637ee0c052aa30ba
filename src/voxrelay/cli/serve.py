"""Comando `voxrelay serve` — inicia o relay WebSocket."""

from __future__ import annotations

import asyncio
import signal
import sys
from pathlib import Path

import click
from pydantic import ValidationError

from voxrelay._types import EndAudioPolicy
from voxrelay.cli.main import cli
from voxrelay.config.settings import RelaySettings
from voxrelay.exceptions import ConfigError, ConfigValidationError
from voxrelay.logging import configure_logging, get_logger

logger = get_logger("cli.serve")


@cli.command()
@click.option("--host", default=None, help="Host do listener.  [default: 0.0.0.0]")
@click.option(
    "--port",
    default=None,
    type=int,
    envvar="PORT",
    help="Porta HTTP/WebSocket (env PORT).  [default: 8080]",
)
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Arquivo YAML de configuracao.",
)
@click.option(
    "--credentials",
    "credentials_path",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="JSON de service account do Google Cloud.",
)
@click.option(
    "--end-audio-policy",
    type=click.Choice([p.value for p in EndAudioPolicy]),
    default=None,
    help="Politica aplicada ao receber end_audio.  [default: keep_open]",
)
@click.option(
    "--log-format",
    type=click.Choice(["console", "json"]),
    default="console",
    show_default=True,
    help="Formato de log.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    default="INFO",
    show_default=True,
    help="Nivel de log.",
)
def serve(
    host: str | None,
    port: int | None,
    config_path: Path | None,
    credentials_path: Path | None,
    end_audio_policy: str | None,
    log_format: str,
    log_level: str,
) -> None:
    """Inicia o relay WebSocket de audio para texto."""
    configure_logging(log_format=log_format, level=log_level)

    try:
        settings = build_settings(
            config_path=config_path,
            host=host,
            port=port,
            credentials_path=credentials_path,
            end_audio_policy=end_audio_policy,
        )
        settings.require_credentials()
    except ConfigError as e:
        logger.error("invalid_configuration", error=str(e))
        click.echo(f"Erro: {e}", err=True)
        sys.exit(1)

    asyncio.run(_serve(settings))


def build_settings(
    config_path: Path | None = None,
    host: str | None = None,
    port: int | None = None,
    credentials_path: Path | None = None,
    end_audio_policy: str | None = None,
) -> RelaySettings:
    """Monta a configuracao: YAML (se informado) + overrides da linha de comando.

    Raises:
        ConfigParseError: YAML ilegivel.
        ConfigValidationError: Valores invalidos.
    """
    settings = RelaySettings.from_yaml_path(config_path) if config_path else RelaySettings()

    overrides: dict[str, object] = {}
    if host is not None:
        overrides["host"] = host
    if port is not None:
        overrides["port"] = port
    if credentials_path is not None:
        overrides["credentials_path"] = credentials_path.expanduser()
    if end_audio_policy is not None:
        overrides["session"] = settings.session.model_copy(
            update={"end_audio_policy": EndAudioPolicy(end_audio_policy)},
        )

    if not overrides:
        return settings
    try:
        return RelaySettings.model_validate({**settings.model_dump(), **overrides})
    except ValidationError as e:
        raise ConfigValidationError("<cli>", [str(e)]) from e


async def _serve(settings: RelaySettings) -> None:
    """Fluxo async principal do serve."""
    import uvicorn

    from voxrelay.recognition.google_speech import GoogleSpeechClient
    from voxrelay.server.app import create_app
    from voxrelay.transcoding.ffmpeg import FFmpegTranscoder

    recognition_client = GoogleSpeechClient(
        settings.recognition,
        credentials_path=settings.credentials_path,
    )
    transcoder = FFmpegTranscoder(settings.transcoder)
    app = create_app(settings, recognition_client=recognition_client, transcoder=transcoder)

    logger.info(
        "server_starting",
        host=settings.host,
        port=settings.port,
        language=settings.recognition.language_code,
        ffmpeg=settings.transcoder.ffmpeg_path,
    )

    # Setup shutdown
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _handle_signal(s: signal.Signals) -> None:
        logger.info("shutdown_signal", signal=s.name)
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _handle_signal, sig)

    # Run uvicorn
    config = uvicorn.Config(app, host=settings.host, port=settings.port, log_level="warning")
    server = uvicorn.Server(config)

    server_task = asyncio.create_task(server.serve())

    # Wait for shutdown signal or server to stop
    _done, _ = await asyncio.wait(
        [server_task, asyncio.create_task(shutdown_event.wait())],
        return_when=asyncio.FIRST_COMPLETED,
    )

    # Graceful shutdown: sessoes vivas sao encerradas pelo registry
    logger.info("stopping_sessions", active=len(app.state.registry))
    await app.state.registry.stop_all("server_shutdown")
    if not server_task.done():
        server.should_exit = True
        await server_task

    logger.info("server_stopped")
