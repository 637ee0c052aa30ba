"""PreemptiveSlot — buffer de profundidade 1 com semantica de preempcao.

Guarda no maximo uma unidade de trabalho concorrente (asyncio.Task). Um novo
item sempre substitui o anterior: o item em execucao e cancelado e sua
finalizacao e aguardada ANTES do novo ser iniciado. Nunca existem dois itens
vivos ao mesmo tempo.

Util para qualquer produtor mais rapido que o consumidor onde trabalho
antigo perde valor quando chega trabalho novo (ex: conversao de chunks de
audio em tempo real).
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

from voxrelay.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine
    from typing import Any

logger = get_logger("session.slot")


class PreemptiveSlot:
    """Slot unico com drop-and-replace.

    Args:
        name: Nome do slot para logging.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._task: asyncio.Task[Any] | None = None
        self._preemptions = 0

    @property
    def occupied(self) -> bool:
        """True se ha um item em execucao."""
        return self._task is not None and not self._task.done()

    @property
    def current(self) -> asyncio.Task[Any] | None:
        return self._task

    @property
    def preemptions(self) -> int:
        """Total de itens cancelados por substituicao."""
        return self._preemptions

    async def replace(
        self,
        factory: Callable[[], Coroutine[Any, Any, Any]],
    ) -> tuple[asyncio.Task[Any], bool]:
        """Substitui o item atual por um novo.

        O item anterior (se ainda em execucao) e cancelado e aguardado antes
        de ``factory`` ser chamada.

        Args:
            factory: Cria a coroutine do novo item.

        Returns:
            Tupla (task do novo item, True se um item anterior foi preemptado).
        """
        preempted = await self._cancel_current()
        if preempted:
            self._preemptions += 1

        task = asyncio.create_task(factory())
        self._task = task
        task.add_done_callback(self._on_done)
        return task, preempted

    async def clear(self) -> bool:
        """Cancela o item atual sem substituir.

        Returns:
            True se havia um item em execucao.
        """
        return await self._cancel_current()

    async def _cancel_current(self) -> bool:
        task = self._task
        self._task = None
        if task is None or task.done():
            return False

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await task
        logger.debug("slot_item_cancelled", slot=self._name)
        return True

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        # Item que terminou sozinho libera o slot, se ainda for o atual
        if self._task is task:
            self._task = None
