"""Clientes de reconhecimento de fala em streaming."""

from voxrelay.recognition.google_speech import GoogleRecognitionHandle, GoogleSpeechClient
from voxrelay.recognition.interface import RecognitionClient, RecognitionHandle

__all__ = [
    "GoogleRecognitionHandle",
    "GoogleSpeechClient",
    "RecognitionClient",
    "RecognitionHandle",
]
