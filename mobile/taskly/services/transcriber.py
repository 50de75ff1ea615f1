"""Transcription engines: lazy local Whisper (faster-whisper) and OpenAI."""

from __future__ import annotations

import asyncio
import logging
import math
import threading
from typing import Any, Iterable, List, Optional, Protocol

import numpy as np
from faster_whisper import WhisperModel
from openai import AsyncOpenAI, OpenAIError

from ..audio.capture import decode_chunk
from ..audio.types import AudioChunk, Segment, TranscriptionResult, Word
from ..config import VoiceSettings
from ..errors import TranscriptionError, UnsupportedEnvironment

LOGGER = logging.getLogger("taskly.whisper")


class Transcriber(Protocol):
    @property
    def model_loaded(self) -> bool: ...

    async def initialize(self) -> None: ...

    async def transcribe(
        self,
        chunk: AudioChunk,
        *,
        language: Optional[str] = None,
        return_timestamps: bool = True,
        word_timestamps: bool = False,
    ) -> TranscriptionResult: ...

    async def cleanup(self) -> None: ...


class WhisperTranscriber:
    """Loads Whisper on demand and runs it off the event loop; supports mock mode."""

    def __init__(self, settings: VoiceSettings) -> None:
        self.settings = settings
        self._lock = threading.Lock()
        self._model: Optional[WhisperModel] = None
        self._mock = settings.whisper_mock_transcriber
        if self._mock:
            LOGGER.warning(
                "Whisper mock mode enabled (set WHISPER_USE_MOCK=0 and configure "
                "WHISPER_MODEL to enable real transcription)."
            )

    @property
    def model_loaded(self) -> bool:
        return self._mock or self._model is not None

    async def initialize(self) -> None:
        if self._mock:
            return
        try:
            await asyncio.to_thread(self._load_model)
        except Exception as exc:
            raise UnsupportedEnvironment(f"Whisper model unavailable: {exc}") from exc

    def _load_model(self) -> WhisperModel:
        if self._mock:
            raise RuntimeError("Mock mode does not load real Whisper models")
        if self._model is None:
            with self._lock:
                if self._model is None:
                    try:
                        self._model = WhisperModel(
                            self.settings.whisper_model,
                            device=self.settings.whisper_device,
                            compute_type=self.settings.whisper_compute_type,
                        )
                    except Exception as exc:  # pragma: no cover - hardware/env dep
                        LOGGER.error(
                            "Failed to load Whisper model '%s': %s",
                            self.settings.whisper_model,
                            exc,
                        )
                        raise
                    LOGGER.info("Whisper model '%s' loaded", self.settings.whisper_model)
        return self._model

    async def transcribe(
        self,
        chunk: AudioChunk,
        *,
        language: Optional[str] = None,
        return_timestamps: bool = True,
        word_timestamps: bool = False,
    ) -> TranscriptionResult:
        try:
            audio = decode_chunk(chunk)
        except Exception as exc:
            raise TranscriptionError(f"Could not decode chunk {chunk.sequence}: {exc}") from exc
        if self._mock:
            return TranscriptionResult(
                text=f"[mock transcript {len(audio)} samples]",
                confidence=None,
                segments=[],
                language=language or "auto",
            )
        try:
            segments, info = await asyncio.to_thread(self._run, audio, language, word_timestamps)
        except Exception as exc:
            raise TranscriptionError(f"Transcription failed: {exc}") from exc
        return _summarize_segments(segments, info, language, return_timestamps)

    def _run(self, audio: np.ndarray, language: Optional[str], word_timestamps: bool):
        model = self._load_model()
        segments, info = model.transcribe(
            audio,
            language=language,
            beam_size=5,
            vad_filter=True,
            word_timestamps=word_timestamps,
        )
        # The segment generator decodes lazily; consume it on this worker thread.
        return list(segments), info

    async def cleanup(self) -> None:
        with self._lock:
            self._model = None


class OpenAITranscriber:
    """Remote transcription through the OpenAI audio API."""

    def __init__(self, settings: VoiceSettings, client: Optional[AsyncOpenAI] = None) -> None:
        self.settings = settings
        if client is None and not settings.openai_api_key:
            raise UnsupportedEnvironment("WHISPER_USE_OPENAI=1 but OPENAI_API_KEY is missing")
        self._client = client
        self._ready = client is not None

    @property
    def model_loaded(self) -> bool:
        return self._ready

    async def initialize(self) -> None:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.settings.openai_api_key)
        self._ready = True

    async def transcribe(
        self,
        chunk: AudioChunk,
        *,
        language: Optional[str] = None,
        return_timestamps: bool = True,
        word_timestamps: bool = False,
    ) -> TranscriptionResult:
        if self._client is None:
            await self.initialize()
        granularities = ["segment"]
        if word_timestamps:
            granularities.append("word")
        params: dict[str, Any] = {
            "model": self.settings.openai_whisper_model,
            "file": (f"chunk_{chunk.sequence}.flac", chunk.data, chunk.mime_type),
            "response_format": "verbose_json",
            "timestamp_granularities": granularities,
        }
        if language:
            params["language"] = language
        try:
            transcript = await self._client.audio.transcriptions.create(**params)
        except OpenAIError as exc:
            raise TranscriptionError(f"OpenAI transcription failed: {exc}") from exc
        segments = [
            Segment(
                start=float(_field(item, "start", 0.0)),
                end=float(_field(item, "end", 0.0)),
                text=str(_field(item, "text", "")).strip(),
                confidence=_probability(_field(item, "avg_logprob", None)),
            )
            for item in (_field(transcript, "segments", None) or [])
        ]
        words = [
            Word(
                start=float(_field(item, "start", 0.0)),
                end=float(_field(item, "end", 0.0)),
                text=str(_field(item, "word", "")),
            )
            for item in (_field(transcript, "words", None) or [])
        ]
        _attach_words(segments, words)
        return TranscriptionResult(
            text=(_field(transcript, "text", "") or "").strip(),
            confidence=_mean([seg.confidence for seg in segments]),
            segments=segments if return_timestamps else [],
            language=_field(transcript, "language", None) or language or "auto",
        )

    async def cleanup(self) -> None:
        if self._client is not None:
            await self._client.close()
        self._client = None
        self._ready = False


def create_transcriber(settings: VoiceSettings) -> Transcriber:
    if settings.whisper_use_openai:
        return OpenAITranscriber(settings)
    return WhisperTranscriber(settings)


def _summarize_segments(
    segments: Iterable, info, language: Optional[str], return_timestamps: bool
) -> TranscriptionResult:
    collected: List[Segment] = []
    for segment in segments:
        words = [
            Word(
                start=float(getattr(word, "start", 0.0) or 0.0),
                end=float(getattr(word, "end", 0.0) or 0.0),
                text=str(getattr(word, "word", "")),
                confidence=getattr(word, "probability", None),
            )
            for word in (getattr(segment, "words", None) or [])
        ]
        collected.append(
            Segment(
                start=float(getattr(segment, "start", 0.0) or 0.0),
                end=float(getattr(segment, "end", 0.0) or 0.0),
                text=segment.text.strip(),
                confidence=_probability(getattr(segment, "avg_logprob", None)),
                words=words,
            )
        )
    text = " ".join(seg.text for seg in collected if seg.text).strip()
    lang = getattr(info, "language", None) or language or "auto"
    return TranscriptionResult(
        text=text,
        confidence=_mean([seg.confidence for seg in collected]),
        segments=collected if return_timestamps else [],
        language=lang,
    )


def _attach_words(segments: List[Segment], words: List[Word]) -> None:
    for word in words:
        for segment in segments:
            if segment.start <= word.start <= segment.end:
                segment.words.append(word)
                break


def _probability(avg_logprob: Optional[float]) -> Optional[float]:
    if avg_logprob is None:
        return None
    return max(0.0, min(1.0, math.exp(float(avg_logprob))))


def _mean(values: List[Optional[float]]) -> Optional[float]:
    present = [value for value in values if value is not None]
    if not present:
        return None
    return sum(present) / len(present)


def _field(item: Any, name: str, default: Any) -> Any:
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


__all__ = ["OpenAITranscriber", "Transcriber", "WhisperTranscriber", "create_transcriber"]
