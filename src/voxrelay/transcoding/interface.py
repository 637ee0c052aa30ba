"""Interface abstrata para adapters de conversao de audio.

O relay interage com o conversor exclusivamente atraves desta interface,
o que permite trocar ffmpeg por outra implementacao (ou por um fake em testes).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable


class Transcoder(ABC):
    """Contrato de conversao: bytes de um container de audio -> PCM raw.

    Saida fixa: mono, 16kHz, 16-bit signed little-endian.
    """

    @abstractmethod
    async def convert(self, data: bytes, sink: Callable[[bytes], None]) -> int:
        """Converte um chunk, repassando a saida ao sink a medida que e produzida.

        O sink recebe blocos alinhados a 16 bits, sem buffer intermediario.
        Cancelar a coroutine deve liberar todos os recursos de SO associados.

        Args:
            data: Bytes do chunk de audio (container arbitrario).
            sink: Callable sincrono que recebe cada bloco PCM.

        Returns:
            Total de bytes PCM entregues ao sink.

        Raises:
            TranscodeError: Se a conversao falhar.
        """
        ...
