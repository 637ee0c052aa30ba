"""SessionStateMachine — maquina de estados da sessao de relay.

Componente puro e sincrono: nao conhece WebSocket, ffmpeg ou asyncio.
O caller (RelaySession) e responsavel por chamar transition() nos
momentos corretos, dentro da sua secao critica.

Estados:
    IDLE -> STREAMING -> CLOSED

Regras:
- CLOSED e terminal: nenhuma transicao e aceita a partir de CLOSED.
- Qualquer estado nao terminal pode transitar para CLOSED.
- STREAMING nunca volta para IDLE (o stream de reconhecimento nao e reaberto).
- Transicoes invalidas levantam InvalidTransitionError.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from voxrelay._types import SessionState
from voxrelay.exceptions import InvalidTransitionError

if TYPE_CHECKING:
    from collections.abc import Callable

# Transicoes validas: {estado_atual: {estados_alvo_permitidos}}
_VALID_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.STREAMING, SessionState.CLOSED}),
    SessionState.STREAMING: frozenset({SessionState.CLOSED}),
    SessionState.CLOSED: frozenset(),
}


class SessionStateMachine:
    """Maquina de estados para sessao de relay.

    Args:
        on_enter: Callbacks chamados ao ENTRAR em um estado, com o tempo
            (ms) passado no estado anterior.
        clock: Funcao que retorna timestamp monotonic (para testes deterministicos).
    """

    def __init__(
        self,
        on_enter: dict[SessionState, Callable[[int], None]] | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._state = SessionState.IDLE
        self._on_enter = on_enter or {}
        self._clock = clock or time.monotonic
        self._state_entered_at = self._clock()

    @property
    def state(self) -> SessionState:
        """Estado atual da sessao."""
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state == SessionState.CLOSED

    @property
    def elapsed_in_state_ms(self) -> int:
        """Tempo (em milissegundos) que a sessao esta no estado atual."""
        elapsed_s = self._clock() - self._state_entered_at
        return int(elapsed_s * 1000)

    def transition(self, target: SessionState) -> int:
        """Transita para o estado alvo.

        Args:
            target: Estado alvo da transicao.

        Returns:
            Tempo (ms) passado no estado anterior.

        Raises:
            InvalidTransitionError: Se a transicao e invalida.
        """
        if target not in _VALID_TRANSITIONS[self._state]:
            raise InvalidTransitionError(self._state.value, target.value)

        elapsed_ms = self.elapsed_in_state_ms
        self._state = target
        self._state_entered_at = self._clock()

        enter_cb = self._on_enter.get(target)
        if enter_cb is not None:
            enter_cb(elapsed_ms)
        return elapsed_ms
