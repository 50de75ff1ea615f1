"""Audio capture capability with chunked output."""

from __future__ import annotations

import asyncio
import io
import logging
import threading
from dataclasses import dataclass
from typing import Iterable, Optional, Protocol

import numpy as np
import soundfile as sf

from ..errors import DeviceUnavailable, PermissionDenied, UnsupportedEnvironment
from .types import AudioChunk

LOGGER = logging.getLogger("taskly.capture")


@dataclass(slots=True)
class StreamConstraints:
    sample_rate: int = 16000
    channels: int = 1
    window_size: int = 2048
    block_ms: int = 20


class AudioStream(Protocol):
    sample_rate: int

    @property
    def active(self) -> bool: ...

    def read_frame(self, size: int) -> np.ndarray: ...

    def encode_chunk(self) -> Optional[AudioChunk]: ...

    def close(self) -> None: ...


class AudioBackend(Protocol):
    async def open_stream(self, constraints: StreamConstraints) -> AudioStream: ...


class BufferedStream:
    """Keeps the latest analysis window and the audio captured since the last chunk.

    Producers call :meth:`push` with PCM blocks (int16 or float). Consumers read
    the rolling window for analysis and drain pending audio as encoded chunks.
    """

    def __init__(self, sample_rate: int, window_size: int = 2048) -> None:
        self.sample_rate = sample_rate
        self.window_size = max(1, int(window_size))
        self._window = np.zeros(self.window_size, dtype=np.float32)
        self._pending: list[np.ndarray] = []
        self._sequence = 0
        self._lock = threading.Lock()
        self._closed = False

    @property
    def active(self) -> bool:
        return not self._closed

    def push(self, samples: np.ndarray) -> None:
        data = _to_float_mono(samples)
        if data.size == 0 or self._closed:
            return
        with self._lock:
            if data.size >= self.window_size:
                self._window[:] = data[-self.window_size :]
            else:
                self._window = np.roll(self._window, -data.size)
                self._window[-data.size :] = data
            self._pending.append(data.copy())

    def read_frame(self, size: int) -> np.ndarray:
        with self._lock:
            if size <= self.window_size:
                return self._window[-size:].copy()
            padded = np.zeros(size, dtype=np.float32)
            padded[-self.window_size :] = self._window
            return padded

    def encode_chunk(self) -> Optional[AudioChunk]:
        with self._lock:
            if not self._pending:
                return None
            samples = np.concatenate(self._pending)
            self._pending = []
            sequence = self._sequence
            self._sequence += 1
        return encode_samples(samples, self.sample_rate, sequence)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._pending = []
            self._window = np.zeros(self.window_size, dtype=np.float32)


class SoundDeviceStream(BufferedStream):
    """Microphone stream backed by a PortAudio input callback."""

    def __init__(self, sd, constraints: StreamConstraints, device=None) -> None:
        super().__init__(constraints.sample_rate, constraints.window_size)
        blocksize = max(1, int(constraints.sample_rate * constraints.block_ms / 1000))
        self._stream = sd.InputStream(
            samplerate=constraints.sample_rate,
            channels=constraints.channels,
            dtype="float32",
            blocksize=blocksize,
            device=device,
            callback=self._callback,
        )
        self._stream.start()

    def _callback(self, indata, frames, time_info, status) -> None:  # noqa: ARG002
        if status:
            LOGGER.debug("Input stream status: %s", status)
        self.push(indata)

    def close(self) -> None:
        if self.active:
            try:
                self._stream.stop()
            finally:
                self._stream.close()
        super().close()


class SoundDeviceBackend:
    """Opens microphone streams through ``sounddevice``."""

    def __init__(self, device=None) -> None:
        self.device = device
        self._sd = None

    def _load(self):
        if self._sd is None:
            try:
                import sounddevice as sd  # type: ignore
            except (ImportError, OSError) as exc:
                raise UnsupportedEnvironment(f"Audio capture unavailable: {exc}") from exc
            self._sd = sd
        return self._sd

    async def open_stream(self, constraints: StreamConstraints) -> SoundDeviceStream:
        sd = self._load()
        try:
            stream = await asyncio.to_thread(SoundDeviceStream, sd, constraints, self.device)
        except sd.PortAudioError as exc:
            raise _classify_device_error(exc) from exc
        LOGGER.info("Microphone opened at %d Hz", constraints.sample_rate)
        return stream


def _classify_device_error(exc: Exception) -> Exception:
    message = str(exc)
    lowered = message.lower()
    if "permission" in lowered or "denied" in lowered or "not authorized" in lowered:
        return PermissionDenied(message)
    return DeviceUnavailable(message)


def encode_samples(samples: np.ndarray, sample_rate: int, sequence: int) -> AudioChunk:
    data = _to_float_mono(samples)
    buffer = io.BytesIO()
    sf.write(buffer, np.clip(data, -1.0, 1.0), sample_rate, format="FLAC", subtype="PCM_16")
    return AudioChunk(
        data=buffer.getvalue(),
        sequence=sequence,
        sample_rate=sample_rate,
        duration_ms=len(data) * 1000.0 / sample_rate,
    )


def decode_chunk(chunk: AudioChunk) -> np.ndarray:
    audio, _ = sf.read(io.BytesIO(chunk.data), dtype="float32")
    if audio.ndim > 1:
        audio = audio.mean(axis=1)
    return audio


def combine_chunks(chunks: Iterable[AudioChunk], sequence: int = 0) -> Optional[AudioChunk]:
    """Concatenate chunks (in the given order) into a single encoded chunk."""

    ordered = list(chunks)
    if not ordered:
        return None
    pieces = [decode_chunk(chunk) for chunk in ordered]
    pieces = [piece for piece in pieces if piece.size]
    if not pieces:
        return None
    return encode_samples(np.concatenate(pieces), ordered[0].sample_rate, sequence)


def _to_float_mono(samples: np.ndarray) -> np.ndarray:
    data = np.asarray(samples)
    if data.ndim > 1:
        data = data[:, 0]
    if np.issubdtype(data.dtype, np.integer):
        return data.astype(np.float32) / 32768.0
    return data.astype(np.float32, copy=False)


__all__ = [
    "AudioBackend",
    "AudioStream",
    "BufferedStream",
    "SoundDeviceBackend",
    "SoundDeviceStream",
    "StreamConstraints",
    "combine_chunks",
    "decode_chunk",
    "encode_samples",
]
