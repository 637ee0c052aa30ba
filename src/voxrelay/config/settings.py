"""Configuracao do processo VoxRelay (arquivo YAML opcional + overrides da CLI)."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator

from voxrelay._types import EndAudioPolicy  # noqa: TC001 - Pydantic needs at runtime
from voxrelay.exceptions import ConfigParseError, ConfigValidationError, CredentialsNotFoundError

DEFAULT_PHRASE_HINTS = ["specific", "terms", "related", "to", "your", "application"]


class RecognitionSettings(BaseModel):
    """Configuracao do stream de reconhecimento, fixa no escopo do processo.

    Encoding (LINEAR16) e sample rate (16kHz) nao sao configuraveis: sao o
    formato produzido pelo transcoder.
    """

    language_code: str = "en-US"
    model: str = "default"
    use_enhanced: bool = True
    phrase_hints: list[str] = Field(default_factory=lambda: list(DEFAULT_PHRASE_HINTS))
    interim_results: bool = True
    enable_automatic_punctuation: bool = True
    enable_word_time_offsets: bool = True


class TranscoderSettings(BaseModel):
    """Configuracao do adapter ffmpeg."""

    ffmpeg_path: str = "ffmpeg"
    input_format: str | None = "3gp"
    kill_timeout_s: float = Field(default=2.0, gt=0)
    read_chunk_bytes: int = Field(default=4096, ge=2)


class SessionSettings(BaseModel):
    """Politicas por sessao."""

    end_audio_policy: EndAudioPolicy = EndAudioPolicy.KEEP_OPEN
    end_audio_idle_timeout_s: float | None = Field(default=30.0, gt=0)


class RelaySettings(BaseModel):
    """Configuracao completa do relay."""

    host: str = "0.0.0.0"  # noqa: S104
    port: int = Field(default=8080, gt=0, lt=65536)
    credentials_path: Path | None = None
    recognition: RecognitionSettings = RecognitionSettings()
    transcoder: TranscoderSettings = TranscoderSettings()
    session: SessionSettings = SessionSettings()

    @field_validator("credentials_path")
    @classmethod
    def expand_credentials_path(cls, v: Path | None) -> Path | None:
        return v.expanduser() if v is not None else None

    def require_credentials(self) -> Path | None:
        """Valida que o arquivo de credenciais existe, se configurado.

        Raises:
            CredentialsNotFoundError: Se credentials_path aponta para arquivo inexistente.
        """
        if self.credentials_path is None:
            return None
        if not self.credentials_path.is_file():
            raise CredentialsNotFoundError(str(self.credentials_path))
        return self.credentials_path

    @classmethod
    def from_yaml_path(cls, path: str | Path) -> RelaySettings:
        """Carrega configuracao a partir de arquivo YAML."""
        path = Path(path)
        if not path.exists():
            raise ConfigParseError(str(path), "Arquivo nao encontrado")

        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigParseError(str(path), f"Erro ao ler arquivo: {e}") from e

        return cls.from_yaml_string(raw, source_path=str(path))

    @classmethod
    def from_yaml_string(cls, raw: str, source_path: str = "<string>") -> RelaySettings:
        """Carrega configuracao a partir de string YAML."""
        try:
            data = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise ConfigParseError(source_path, f"YAML invalido: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigParseError(source_path, "Conteudo YAML deve ser um mapeamento")

        try:
            return cls.model_validate(data)
        except Exception as e:
            errors = [str(e)]
            raise ConfigValidationError(source_path, errors) from e
