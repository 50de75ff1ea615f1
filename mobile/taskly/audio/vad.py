"""Adaptive voice activity detection over analyzer frames."""

from __future__ import annotations

import collections
import logging
from dataclasses import dataclass, replace
from typing import Deque

import numpy as np

from .types import AudioFrame

LOGGER = logging.getLogger("taskly.vad")

SPEECH_BAND_HZ = (300.0, 3400.0)
INITIAL_NOISE_FLOOR = 0.01
MAX_THRESHOLD = 0.08
MIN_NOISE_COMPENSATION = 0.005


@dataclass(slots=True)
class VADState:
    is_speaking: bool = False
    volume: float = 0.0
    confidence: float = 0.0
    background_noise: float = 0.0
    speech_duration: float = 0.0
    silence_duration: float = 0.0

    def copy(self) -> "VADState":
        return replace(self)


@dataclass(slots=True, frozen=True)
class VADDecision:
    state: VADState
    speech_started: bool
    speech_ended: bool
    threshold: float
    speech_ratio: float
    speech_energy: float


class AdaptiveVAD:
    """Speech/silence classifier with a noise-tracking threshold.

    A frame counts as speech when its volume clears the adaptive threshold and
    either the speech band dominates the spectrum or its energy is well above
    the noise floor. The noise floor is estimated from silent frames only, so
    the speaker's own voice never raises it.
    """

    def __init__(
        self,
        sensitivity: int = 3,
        *,
        adaptive: bool = True,
        noise_window: int = 100,
        noise_fraction: float = 0.2,
        history_size: int = 20,
        ratio_threshold: float = 0.3,
        energy_factor: float = 3.0,
    ) -> None:
        if not isinstance(sensitivity, int) or not 1 <= sensitivity <= 5:
            raise ValueError("sensitivity must be an integer between 1 and 5")
        self.sensitivity = sensitivity
        self.adaptive = adaptive
        self.noise_fraction = noise_fraction
        self.ratio_threshold = ratio_threshold
        self.energy_factor = energy_factor
        self._noise_samples: Deque[float] = collections.deque(maxlen=noise_window)
        self._history: Deque[int] = collections.deque(maxlen=history_size)
        self._noise_floor = INITIAL_NOISE_FLOOR
        self._threshold = self.compute_threshold()
        self._state = VADState()
        self._phase_started_ms: float | None = None
        self._warned_no_spectrum = False

    @property
    def state(self) -> VADState:
        return self._state.copy()

    @property
    def noise_floor(self) -> float:
        return self._noise_floor

    @property
    def noise_samples(self) -> tuple[float, ...]:
        return tuple(self._noise_samples)

    @property
    def threshold(self) -> float:
        return self._threshold if self.adaptive else self.compute_threshold()

    def compute_threshold(self) -> float:
        base = 0.01 + (5 - self.sensitivity) * 0.005
        compensation = max(self._noise_floor * 2, MIN_NOISE_COMPENSATION)
        return min(base + compensation, MAX_THRESHOLD)

    def process(self, frame: AudioFrame, now_ms: float) -> VADDecision:
        ratio, energy = self._speech_band(frame)
        threshold = self.threshold
        spectral_ok = frame.frequency_bins is not None and frame.frequency_bins.size > 0
        is_speech = bool(
            spectral_ok
            and frame.volume > threshold
            and (ratio > self.ratio_threshold or energy > self._noise_floor * self.energy_factor)
        )

        self._history.append(1 if is_speech else 0)
        confidence = min(2.0 * sum(self._history) / len(self._history), 1.0)

        previous = self._state
        started = is_speech and not previous.is_speaking
        ended = previous.is_speaking and not is_speech
        speech_duration = previous.speech_duration
        silence_duration = previous.silence_duration
        if self._phase_started_ms is None or started or ended:
            self._phase_started_ms = now_ms
            if started:
                silence_duration = 0.0
                speech_duration = 0.0
            elif ended:
                speech_duration = 0.0
                silence_duration = 0.0
        elif is_speech:
            speech_duration = now_ms - self._phase_started_ms
        else:
            silence_duration = now_ms - self._phase_started_ms

        if not is_speech:
            self._update_noise_floor(frame.volume)

        self._state = VADState(
            is_speaking=is_speech,
            volume=frame.volume,
            confidence=confidence,
            background_noise=self._noise_floor,
            speech_duration=speech_duration,
            silence_duration=silence_duration,
        )
        return VADDecision(
            state=self._state.copy(),
            speech_started=started,
            speech_ended=ended,
            threshold=threshold,
            speech_ratio=ratio,
            speech_energy=energy,
        )

    def reset(self) -> None:
        self._noise_samples.clear()
        self._history.clear()
        self._noise_floor = INITIAL_NOISE_FLOOR
        self._threshold = self.compute_threshold()
        self._state = VADState()
        self._phase_started_ms = None

    def _update_noise_floor(self, volume: float) -> None:
        self._noise_samples.append(volume)
        ordered = sorted(self._noise_samples)
        count = max(1, int(len(ordered) * self.noise_fraction))
        self._noise_floor = sum(ordered[:count]) / count
        if self.adaptive:
            self._threshold = self.compute_threshold()

    def _speech_band(self, frame: AudioFrame) -> tuple[float, float]:
        bins = frame.frequency_bins
        if bins is None or bins.size == 0:
            if not self._warned_no_spectrum:
                LOGGER.warning("No spectral data available; treating frames as silence")
                self._warned_no_spectrum = True
            return 0.0, 0.0
        energies = np.square(bins.astype(np.float64))
        start = int(SPEECH_BAND_HZ[0] / frame.bin_hz)
        end = int(SPEECH_BAND_HZ[1] / frame.bin_hz)
        speech_energy = float(energies[start : end + 1].sum())
        total_energy = float(energies.sum())
        return speech_energy / max(total_energy, 0.001), speech_energy


__all__ = ["AdaptiveVAD", "VADDecision", "VADState", "SPEECH_BAND_HZ"]
