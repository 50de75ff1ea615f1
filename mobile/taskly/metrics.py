"""Prometheus metrics for capture sessions and transcription."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Summary

TRANSCRIPTION_COUNTER = Counter(
    "taskly_transcriptions_total",
    "Transcription calls by phase and outcome",
    labelnames=("phase", "status"),
)

TRANSCRIPTION_LATENCY = Histogram(
    "taskly_transcription_latency_seconds",
    "Transcription call latency",
    labelnames=("phase",),
)

TRANSCRIPTION_QUEUE_DEPTH = Gauge(
    "taskly_transcription_queue_depth",
    "Chunks waiting behind the in-flight transcription",
)

SESSION_COUNTER = Counter(
    "taskly_voice_sessions_total",
    "Voice sessions by how they ended",
    labelnames=("outcome",),
)

SESSION_DURATION = Summary(
    "taskly_voice_session_seconds",
    "Time from start of listening to final transcript",
)
