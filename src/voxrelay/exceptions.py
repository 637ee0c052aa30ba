"""Exceptions tipadas do VoxRelay.

Hierarquia:
    VoxRelayError (base)
    +-- ConfigError
    |   +-- ConfigParseError
    |   +-- ConfigValidationError
    |   +-- CredentialsNotFoundError
    +-- AudioError
    |   +-- TranscodeError
    +-- RecognitionError
    |   +-- RecognitionStreamError
    +-- SessionError
        +-- SessionClosedError
        +-- InvalidTransitionError
"""

from __future__ import annotations


class VoxRelayError(Exception):
    """Base para todas as exceptions do VoxRelay."""


# --- Configuracao ---


class ConfigError(VoxRelayError):
    """Erro de configuracao do processo."""


class ConfigParseError(ConfigError):
    """Falha ao parsear arquivo de configuracao YAML."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Falha ao parsear configuracao '{path}': {reason}")


class ConfigValidationError(ConfigError):
    """Configuracao invalida (campos com tipos ou valores errados)."""

    def __init__(self, path: str, errors: list[str]) -> None:
        self.path = path
        self.errors = errors
        detail = "; ".join(errors)
        super().__init__(f"Configuracao '{path}' invalida: {detail}")


class CredentialsNotFoundError(ConfigError):
    """Arquivo de credenciais do servico de reconhecimento nao encontrado."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Arquivo de credenciais nao encontrado: {path}")


# --- Audio ---


class AudioError(VoxRelayError):
    """Erro relacionado a processamento de audio."""


class TranscodeError(AudioError):
    """Conversao de um chunk para PCM falhou."""

    def __init__(self, exit_code: int | None, detail: str = "") -> None:
        self.exit_code = exit_code
        self.detail = detail
        msg = "Falha na conversao de audio"
        if exit_code is not None:
            msg += f" (exit code: {exit_code})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


# --- Reconhecimento ---


class RecognitionError(VoxRelayError):
    """Erro relacionado ao servico remoto de reconhecimento."""


class RecognitionStreamError(RecognitionError):
    """Stream de reconhecimento falhou ou nao pode ser aberto."""

    def __init__(self, session_id: str, reason: str) -> None:
        self.session_id = session_id
        self.reason = reason
        super().__init__(f"Stream de reconhecimento da sessao '{session_id}' falhou: {reason}")


# --- Sessao ---


class SessionError(VoxRelayError):
    """Erro relacionado a sessoes de relay."""


class SessionClosedError(SessionError):
    """Operacao tentada em sessao ja fechada."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Sessao '{session_id}' ja esta fechada")


class InvalidTransitionError(SessionError):
    """Transicao de estado invalida na maquina de estados da sessao."""

    def __init__(self, from_state: str, to_state: str) -> None:
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Transicao invalida: {from_state} -> {to_state}")
