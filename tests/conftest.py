"""Pytest configuration helpers."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import numpy as np
import pytest


def _ensure_repo_on_path() -> None:
    """Allow tests to import from repo modules without setting PYTHONPATH."""
    repo_root = Path(__file__).resolve().parents[1]
    path_str = str(repo_root)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)


_ensure_repo_on_path()

from mobile.taskly.audio.capture import BufferedStream, StreamConstraints, decode_chunk  # noqa: E402
from mobile.taskly.audio.types import AudioChunk, TranscriptionResult  # noqa: E402
from mobile.taskly.config import VoiceSettings  # noqa: E402


def tone(size: int, sample_rate: int = 16_000, freq: float = 1000.0, amplitude: float = 0.3) -> np.ndarray:
    t = np.arange(size)
    return (amplitude * np.sin(2 * np.pi * freq * t / sample_rate)).astype(np.float32)


class ScriptedStream(BufferedStream):
    """Microphone stand-in: every analysis read captures a tone while ``speaking``."""

    def __init__(self, sample_rate: int = 16_000, window_size: int = 2048) -> None:
        super().__init__(sample_rate, window_size)
        self.speaking = False

    def read_frame(self, size: int) -> np.ndarray:
        if self.active:
            block = tone(size, self.sample_rate) if self.speaking else np.zeros(size, dtype=np.float32)
            self.push(block)
        return super().read_frame(size)


class FakeBackend:
    def __init__(
        self,
        error: Exception | None = None,
        *,
        stream_factory: type[ScriptedStream] = ScriptedStream,
        delay: float = 0.0,
    ) -> None:
        self.error = error
        self.stream_factory = stream_factory
        self.delay = delay
        self.stream: ScriptedStream | None = None
        self.opened = 0

    async def open_stream(self, constraints: StreamConstraints) -> ScriptedStream:
        self.opened += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        self.stream = self.stream_factory(constraints.sample_rate, constraints.window_size)
        return self.stream


class FakeTranscriber:
    """Returns canned text for chunks that contain sound and nothing for silence."""

    def __init__(
        self,
        partial: str = "buy milk tomorrow.",
        final: str = "Buy milk tomorrow.",
        final_error: Exception | None = None,
    ) -> None:
        self.partial = partial
        self.final = final
        self.final_error = final_error
        self.calls: list[tuple[int, bool]] = []
        self.initialized = False
        self.cleaned_up = False

    @property
    def model_loaded(self) -> bool:
        return self.initialized

    async def initialize(self) -> None:
        self.initialized = True

    async def transcribe(
        self,
        chunk: AudioChunk,
        *,
        language: str | None = None,
        return_timestamps: bool = True,
        word_timestamps: bool = False,
    ) -> TranscriptionResult:
        self.calls.append((chunk.sequence, word_timestamps))
        if word_timestamps and self.final_error is not None:
            raise self.final_error
        audio = decode_chunk(chunk)
        loud = audio.size > 0 and float(np.abs(audio).max()) > 0.05
        text = (self.final if word_timestamps else self.partial) if loud else ""
        return TranscriptionResult(text=text, confidence=0.9, language=language)

    async def cleanup(self) -> None:
        self.cleaned_up = True


@pytest.fixture
def fast_settings() -> VoiceSettings:
    return VoiceSettings(
        frame_interval_ms=5,
        chunk_ms=40,
        sensitivity=3,
        pause_base_ms=60,
        pause_confident_ms=40,
        pause_uncertain_ms=80,
        pause_floor_ms=20,
        long_silence_ms=1000,
        max_pause_reduction_ms=20,
        listen_timeout_ms=None,
        thinking_display_ms=10,
        error_display_ms=10,
        whisper_mock_transcriber=True,
    )
