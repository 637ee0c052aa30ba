"""Adapters de conversao de audio para PCM raw."""

from voxrelay.transcoding.ffmpeg import FFmpegTranscoder, TranscodeJob
from voxrelay.transcoding.interface import Transcoder

__all__ = [
    "FFmpegTranscoder",
    "TranscodeJob",
    "Transcoder",
]
