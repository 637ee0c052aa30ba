"""Metricas Prometheus do relay.

Metricas sao opcionais: se prometheus_client nao estiver instalado,
o modulo exporta None para cada metrica e o codigo consumidor deve
verificar antes de usar.

Metricas definidas:
- voxrelay_active_sessions: Gauge de sessoes registradas
- voxrelay_session_duration_seconds: Duracao total de sessoes encerradas
- voxrelay_transcoder_preemptions_total: Conversoes interrompidas por um chunk novo
- voxrelay_transcode_failures_total: Conversoes que terminaram com erro
- voxrelay_recognition_errors_total: Falhas fatais do stream de reconhecimento
- voxrelay_transcripts_total: Transcricoes enviadas ao cliente por tipo (partial, final)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prometheus_client import Counter, Gauge, Histogram

try:
    from prometheus_client import Counter as _Counter
    from prometheus_client import Gauge as _Gauge
    from prometheus_client import Histogram as _Histogram

    relay_active_sessions: Gauge | None = _Gauge(
        "voxrelay_active_sessions",
        "Number of sessions currently in the connection registry",
    )

    relay_session_duration_seconds: Histogram | None = _Histogram(
        "voxrelay_session_duration_seconds",
        "Total duration of closed relay sessions",
        buckets=(1, 5, 10, 30, 60, 120, 300, 600, 1800),
    )

    relay_transcoder_preemptions_total: Counter | None = _Counter(
        "voxrelay_transcoder_preemptions_total",
        "Running conversions terminated because a newer chunk arrived",
    )

    relay_transcode_failures_total: Counter | None = _Counter(
        "voxrelay_transcode_failures_total",
        "Conversions that ended with an error",
    )

    relay_recognition_errors_total: Counter | None = _Counter(
        "voxrelay_recognition_errors_total",
        "Fatal recognition stream failures",
    )

    relay_transcripts_total: Counter | None = _Counter(
        "voxrelay_transcripts_total",
        "Transcripts relayed to clients by kind",
        ["kind"],
    )

    HAS_METRICS = True

except ImportError:
    relay_active_sessions = None
    relay_session_duration_seconds = None
    relay_transcoder_preemptions_total = None
    relay_transcode_failures_total = None
    relay_recognition_errors_total = None
    relay_transcripts_total = None

    HAS_METRICS = False
