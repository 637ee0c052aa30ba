"""SessionRegistry — mapa conexao -> sessao, compartilhado entre conexoes.

Unico estado compartilhado entre sessoes. Guarda referencias fracas
(nao e dono das sessoes: cada sessao pertence ao handler da sua conexao).
Protegido por lock para acesso a partir de multiplos contextos/threads.
"""

from __future__ import annotations

import asyncio
import threading
import weakref
from typing import TYPE_CHECKING

from voxrelay.logging import get_logger
from voxrelay.session.metrics import HAS_METRICS, relay_active_sessions

if TYPE_CHECKING:
    from voxrelay.session.relay import RelaySession

logger = get_logger("session.registry")


class SessionRegistry:
    """Registro de sessoes ativas por connection_id.

    Invariante: uma sessao esta registrada enquanto sua conexao esta aberta.
    """

    def __init__(self) -> None:
        self._sessions: weakref.WeakValueDictionary[str, RelaySession] = (
            weakref.WeakValueDictionary()
        )
        self._lock = threading.Lock()

    def register(self, connection_id: str, session: RelaySession) -> None:
        """Registra a sessao de uma conexao.

        Raises:
            ValueError: Se a conexao ja possui outra sessao registrada.
        """
        with self._lock:
            existing = self._sessions.get(connection_id)
            if existing is not None and existing is not session:
                msg = f"Conexao '{connection_id}' ja possui sessao registrada"
                raise ValueError(msg)
            self._sessions[connection_id] = session
            total = len(self._sessions)

        if HAS_METRICS and relay_active_sessions is not None:
            relay_active_sessions.set(total)
        logger.debug("session_registered", connection_id=connection_id, active=total)

    def lookup(self, connection_id: str) -> RelaySession | None:
        with self._lock:
            return self._sessions.get(connection_id)

    def unregister(self, connection_id: str, session: RelaySession | None = None) -> bool:
        """Remove a sessao da conexao.

        Args:
            connection_id: ID da conexao.
            session: Se informado, remove apenas se for a sessao registrada.

        Returns:
            True se uma sessao foi removida.
        """
        with self._lock:
            existing = self._sessions.get(connection_id)
            if existing is None or (session is not None and existing is not session):
                return False
            del self._sessions[connection_id]
            total = len(self._sessions)

        if HAS_METRICS and relay_active_sessions is not None:
            relay_active_sessions.set(total)
        logger.debug("session_unregistered", connection_id=connection_id, active=total)
        return True

    def snapshot(self) -> list[RelaySession]:
        """Copia das sessoes registradas no momento."""
        with self._lock:
            return list(self._sessions.values())

    async def stop_all(self, reason: str = "shutdown") -> int:
        """Encerra todas as sessoes registradas (shutdown externo).

        Returns:
            Numero de sessoes encerradas.
        """
        sessions = self.snapshot()
        if sessions:
            await asyncio.gather(
                *(session.stop(reason) for session in sessions),
                return_exceptions=True,
            )
            logger.info("sessions_stopped", count=len(sessions), reason=reason)
        return len(sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, connection_id: object) -> bool:
        with self._lock:
            return connection_id in self._sessions
