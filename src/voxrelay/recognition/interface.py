"""Interface abstrata do cliente de reconhecimento de fala em streaming.

Todo backend de reconhecimento deve implementar estas interfaces para ser
plugavel no relay. A sessao conhece apenas RecognitionClient e
RecognitionHandle.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from voxrelay._types import RecognitionEvent


class RecognitionHandle(ABC):
    """Um stream bidirecional aberto com o servico remoto.

    Valido de open() ate close()/abort(). Resultados e erros chegam por um
    canal explicito de eventos, consumido via events() na ordem de chegada.
    """

    @property
    @abstractmethod
    def session_id(self) -> str:
        """ID da sessao associada a este stream."""
        ...

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        """True se o stream foi fechado (graceful, abort ou erro)."""
        ...

    @abstractmethod
    def write(self, pcm_data: bytes) -> None:
        """Envia PCM 16-bit 16kHz mono ao servico (fire-and-forget).

        Erros de envio chegam pelo canal de eventos, nunca pelo retorno.
        No-op se o stream ja foi fechado.
        """
        ...

    @abstractmethod
    def events(self) -> AsyncIterator[RecognitionEvent]:
        """Eventos do stream, na ordem em que o servico os emite.

        Termina apos RecognitionFailure, RecognitionStreamEnded ou abort().
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Encerra o stream gracefully (fim do audio). Idempotente."""
        ...

    @abstractmethod
    async def abort(self) -> None:
        """Cancela o stream imediatamente, sem flush. Idempotente."""
        ...


class RecognitionClient(ABC):
    """Fabrica de streams de reconhecimento com configuracao de processo."""

    @abstractmethod
    async def open(self, session_id: str) -> RecognitionHandle:
        """Abre um novo stream para a sessao.

        Raises:
            RecognitionStreamError: Se o stream nao puder ser aberto.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Libera o transporte compartilhado pelos streams."""
        ...
