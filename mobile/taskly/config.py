"""Voice core settings resolved from the environment."""

from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel, Field


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


def _optional_int(name: str, default: str) -> int | None:
    raw = os.getenv(name, default).strip()
    if not raw or raw.lower() in {"none", "off", "0"}:
        return None
    return int(raw)


class VoiceSettings(BaseModel):
    sample_rate: int = Field(default=int(os.getenv("TASKLY_SAMPLE_RATE", "16000")))
    channels: int = Field(default=1)
    fft_size: int = Field(default=int(os.getenv("TASKLY_FFT_SIZE", "2048")))
    smoothing: float = Field(default=float(os.getenv("TASKLY_FFT_SMOOTHING", "0.3")))
    frame_interval_ms: float = Field(default=float(os.getenv("TASKLY_FRAME_INTERVAL_MS", "16")))
    chunk_ms: int = Field(default=int(os.getenv("TASKLY_CHUNK_MS", "800")))
    sensitivity: int = Field(default=int(os.getenv("TASKLY_VAD_SENSITIVITY", "3")))
    adaptive_threshold: bool = Field(default=_flag("TASKLY_VAD_ADAPTIVE", "true"))
    language: str = Field(default=os.getenv("TASKLY_LANGUAGE", "en"))

    pause_base_ms: float = Field(default=float(os.getenv("TASKLY_PAUSE_BASE_MS", "1500")))
    pause_confident_ms: float = Field(default=float(os.getenv("TASKLY_PAUSE_CONFIDENT_MS", "800")))
    pause_uncertain_ms: float = Field(default=float(os.getenv("TASKLY_PAUSE_UNCERTAIN_MS", "2500")))
    pause_floor_ms: float = Field(default=float(os.getenv("TASKLY_PAUSE_FLOOR_MS", "500")))
    long_silence_ms: float = Field(default=float(os.getenv("TASKLY_LONG_SILENCE_MS", "2000")))
    max_pause_reduction_ms: float = Field(default=float(os.getenv("TASKLY_MAX_PAUSE_REDUCTION_MS", "500")))
    listen_timeout_ms: int | None = Field(default=_optional_int("TASKLY_LISTEN_TIMEOUT_MS", "10000"))
    thinking_display_ms: float = Field(default=float(os.getenv("TASKLY_THINKING_DISPLAY_MS", "500")))
    error_display_ms: float = Field(default=float(os.getenv("TASKLY_ERROR_DISPLAY_MS", "500")))

    whisper_model: str = Field(default=os.getenv("WHISPER_MODEL", "base.en"))
    whisper_device: str = Field(default=os.getenv("WHISPER_DEVICE", "cpu"))
    whisper_compute_type: str = Field(default=os.getenv("WHISPER_COMPUTE_TYPE", "int8"))
    whisper_mock_transcriber: bool = Field(default=_flag("WHISPER_USE_MOCK"))
    whisper_use_openai: bool = Field(default=_flag("WHISPER_USE_OPENAI"))
    openai_api_key: str | None = Field(default=os.getenv("OPENAI_API_KEY"))
    openai_whisper_model: str = Field(default=os.getenv("OPENAI_WHISPER_MODEL", "whisper-1"))

    log_buffer_size: int = Field(default=int(os.getenv("TASKLY_LOG_BUFFER_SIZE", "200")))


@lru_cache()
def get_settings() -> VoiceSettings:
    return VoiceSettings()
