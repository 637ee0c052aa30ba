"""Structured logging para o VoxRelay.

Usa structlog com stdlib logging como backend. Dois formatos:
- console: legivel para desenvolvimento (default)
- json: estruturado para producao

Correlacao por conexao: ``bind_connection()`` vincula ``connection_id`` via
``structlog.contextvars``. Tasks criadas dentro do bloco (relay de eventos,
jobs de conversao, idle timer) herdam o contexto, entao toda linha de log da
conexao carrega o mesmo ``connection_id`` sem repassa-lo a cada chamada.
"""

from __future__ import annotations

import contextlib
import logging
import os
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterator

_configured = False

# Bibliotecas de terceiros verbosas no nivel INFO/DEBUG
_NOISY_LOGGERS = ("google", "grpc", "urllib3", "uvicorn.access")


def configure_logging(
    log_format: str | None = None,
    level: str | None = None,
) -> None:
    """Configura logging estruturado para o relay.

    Idempotente: chamadas subsequentes sao ignoradas.

    Args:
        log_format: "json" ou "console". Default via VOXRELAY_LOG_FORMAT env ou "console".
        level: Nivel de log (DEBUG, INFO, WARNING, ERROR). Default via VOXRELAY_LOG_LEVEL
            env ou "INFO". Bibliotecas de terceiros ficam em WARNING, exceto em DEBUG.
    """
    global _configured
    if _configured:
        return

    resolved_format = log_format or os.environ.get("VOXRELAY_LOG_FORMAT", "console")
    resolved_level = getattr(
        logging,
        (level or os.environ.get("VOXRELAY_LOG_LEVEL", "INFO")).upper(),
        logging.INFO,
    )

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]

    if resolved_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        # Logs de stdlib (uvicorn, google-api-core) passam pelo mesmo renderer
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(resolved_level)

    if resolved_level <= logging.DEBUG:
        third_party_level = resolved_level
    else:
        third_party_level = max(resolved_level, logging.WARNING)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)

    _configured = True


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Retorna logger com contexto de componente.

    Args:
        component: Nome do componente (ex: "session.relay", "transcoding.ffmpeg").

    Returns:
        BoundLogger com campo component vinculado.
    """
    configure_logging()
    return structlog.get_logger().bind(component=component)  # type: ignore[no-any-return]


@contextlib.contextmanager
def bind_connection(connection_id: str, **extra: object) -> Iterator[None]:
    """Vincula ``connection_id`` (e campos extras) a todo log emitido no bloco.

    O contexto anterior e restaurado na saida, entao conexoes atendidas
    no mesmo event loop nao vazam contexto entre si.
    """
    with structlog.contextvars.bound_contextvars(connection_id=connection_id, **extra):
        yield
