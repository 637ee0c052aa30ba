"""Conversores entre settings/respostas do Google Speech e tipos VoxRelay.

Funcoes puras — sem side effects, sem IO.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from google.cloud import speech

from voxrelay._types import (
    TARGET_SAMPLE_RATE,
    RecognitionEvent,
    RecognitionFailure,
    TranscriptResult,
)

if TYPE_CHECKING:
    from voxrelay.config.settings import RecognitionSettings


def build_streaming_config(settings: RecognitionSettings) -> speech.StreamingRecognitionConfig:
    """Monta a configuracao de streaming (enviada no primeiro request de cada stream)."""
    speech_contexts = []
    if settings.phrase_hints:
        speech_contexts.append(speech.SpeechContext(phrases=list(settings.phrase_hints)))

    config = speech.RecognitionConfig(
        encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
        sample_rate_hertz=TARGET_SAMPLE_RATE,
        language_code=settings.language_code,
        model=settings.model,
        use_enhanced=settings.use_enhanced,
        speech_contexts=speech_contexts,
        enable_word_time_offsets=settings.enable_word_time_offsets,
        enable_automatic_punctuation=settings.enable_automatic_punctuation,
    )
    return speech.StreamingRecognitionConfig(
        config=config,
        interim_results=settings.interim_results,
    )


def response_to_event(
    response: speech.StreamingRecognizeResponse,
) -> RecognitionEvent | None:
    """Converte uma resposta de streaming em evento de reconhecimento.

    Usa apenas a primeira alternativa do primeiro resultado. Respostas sem
    resultado (ex: eventos de fim de fala) retornam None.
    """
    if response.error and response.error.code != 0:
        return RecognitionFailure(
            message=response.error.message or "Recognition stream error",
            code=str(response.error.code),
        )

    if not response.results:
        return None

    result = response.results[0]
    if not result.alternatives:
        return None

    return TranscriptResult(
        transcript=result.alternatives[0].transcript,
        is_final=bool(result.is_final),
    )
