"""Configuracao do VoxRelay."""

from voxrelay.config.settings import (
    RecognitionSettings,
    RelaySettings,
    SessionSettings,
    TranscoderSettings,
)

__all__ = [
    "RecognitionSettings",
    "RelaySettings",
    "SessionSettings",
    "TranscoderSettings",
]
