"""Dataclasses shared across audio and transcription helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

DEFAULT_CONFIDENCE = 0.8


@dataclass(slots=True)
class AudioFrame:
    """One analysis tick: time-domain window plus normalised spectrum."""

    samples: np.ndarray
    frequency_bins: Optional[np.ndarray]
    volume: float
    sample_rate: int
    bin_hz: float


@dataclass(slots=True)
class AudioChunk:
    """Encoded slice of captured audio awaiting transcription."""

    data: bytes
    sequence: int
    sample_rate: int
    duration_ms: float
    mime_type: str = "audio/flac"


@dataclass(slots=True)
class Word:
    start: float
    end: float
    text: str
    confidence: Optional[float] = None


@dataclass(slots=True)
class Segment:
    """Timed span of transcript text (seconds relative to the chunk)."""

    start: float
    end: float
    text: str
    confidence: Optional[float] = None
    words: List[Word] = field(default_factory=list)


@dataclass(slots=True)
class TranscriptionResult:
    text: str
    confidence: Optional[float] = None
    segments: List[Segment] = field(default_factory=list)
    language: Optional[str] = None

    @property
    def effective_confidence(self) -> float:
        return DEFAULT_CONFIDENCE if self.confidence is None else self.confidence
