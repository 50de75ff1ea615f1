"""Frame-level volume and spectrum analysis over a live stream."""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from ..errors import AudioUnavailable
from .capture import AudioStream
from .types import AudioFrame

LOGGER = logging.getLogger("taskly.analyzer")


def rms_volume(samples: np.ndarray) -> float:
    """Return the RMS level of a float buffer in [-1, 1]."""

    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(samples.astype(np.float64)))))


class AudioAnalyzer:
    """Mimics a browser analyser node: RMS volume plus smoothed, dB-scaled bins."""

    def __init__(
        self,
        stream: Optional[AudioStream],
        *,
        fft_size: int = 2048,
        smoothing: float = 0.3,
        min_db: float = -100.0,
        max_db: float = -30.0,
        spectral: bool = True,
    ) -> None:
        if stream is None or not stream.active:
            raise AudioUnavailable("No active audio stream to analyze")
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise ValueError("fft_size must be a power of two >= 32")
        if max_db <= min_db:
            raise ValueError("max_db must be greater than min_db")
        self.stream = stream
        self.fft_size = fft_size
        self.smoothing = max(0.0, min(float(smoothing), 0.999))
        self.min_db = min_db
        self.max_db = max_db
        self.spectral = spectral
        self.sample_rate = stream.sample_rate
        self._blackman = np.blackman(fft_size).astype(np.float64)
        self._smoothed = np.zeros(fft_size // 2, dtype=np.float64)

    @property
    def bin_hz(self) -> float:
        return self.sample_rate / self.fft_size

    @property
    def bin_count(self) -> int:
        return self.fft_size // 2

    def analyze_frame(self) -> AudioFrame:
        samples = self.stream.read_frame(self.fft_size)
        volume = rms_volume(samples)
        bins = self._spectrum(samples) if self.spectral else None
        return AudioFrame(
            samples=samples,
            frequency_bins=bins,
            volume=volume,
            sample_rate=self.sample_rate,
            bin_hz=self.bin_hz,
        )

    def reset(self) -> None:
        self._smoothed[:] = 0.0

    def _spectrum(self, samples: np.ndarray) -> Optional[np.ndarray]:
        try:
            windowed = samples.astype(np.float64) * self._blackman
            magnitude = np.abs(np.fft.rfft(windowed))[: self.bin_count] / self.fft_size
        except (ValueError, FloatingPointError) as exc:
            LOGGER.warning("Spectral analysis failed: %s", exc)
            return None
        self._smoothed = self.smoothing * self._smoothed + (1.0 - self.smoothing) * magnitude
        with np.errstate(divide="ignore"):
            decibels = 20.0 * np.log10(self._smoothed)
        scaled = (decibels - self.min_db) / (self.max_db - self.min_db)
        return np.clip(np.nan_to_num(scaled, neginf=0.0), 0.0, 1.0)


__all__ = ["AudioAnalyzer", "rms_volume"]
