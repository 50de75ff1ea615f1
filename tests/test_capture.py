import asyncio
import sys
from types import SimpleNamespace

import numpy as np
import pytest

from mobile.taskly.audio.capture import (
    BufferedStream,
    SoundDeviceBackend,
    StreamConstraints,
    combine_chunks,
    decode_chunk,
    encode_samples,
)
from mobile.taskly.errors import DeviceUnavailable, PermissionDenied, UnsupportedEnvironment

from conftest import tone


def test_flac_chunk_preserves_audio():
    samples = tone(1600)
    chunk = encode_samples(samples, 16_000, 4)
    assert chunk.mime_type == "audio/flac"
    assert chunk.sequence == 4
    assert chunk.duration_ms == pytest.approx(100.0)
    decoded = decode_chunk(chunk)
    assert decoded.shape == samples.shape
    assert np.allclose(decoded, samples, atol=1e-3)


def test_combine_chunks_concatenates_in_order():
    first = encode_samples(np.full(800, 0.1, dtype=np.float32), 16_000, 0)
    second = encode_samples(np.full(1600, -0.2, dtype=np.float32), 16_000, 1)
    combined = combine_chunks([first, second], sequence=9)
    audio = decode_chunk(combined)
    assert combined.sequence == 9
    assert audio.shape == (2400,)
    assert audio[0] == pytest.approx(0.1, abs=1e-3)
    assert audio[-1] == pytest.approx(-0.2, abs=1e-3)
    assert combine_chunks([]) is None


def test_buffered_stream_window_and_chunks():
    stream = BufferedStream(16_000, window_size=4)
    assert stream.encode_chunk() is None

    stream.push(np.array([16384, -16384], dtype=np.int16))
    stream.push(np.array([[0.25, 0.9], [0.5, 0.9]], dtype=np.float32))
    assert np.allclose(stream.read_frame(4), [0.5, -0.5, 0.25, 0.5])
    assert np.allclose(stream.read_frame(2), [0.25, 0.5])
    assert np.allclose(stream.read_frame(6), [0.0, 0.0, 0.5, -0.5, 0.25, 0.5])

    first = stream.encode_chunk()
    stream.push(np.ones(10, dtype=np.float32) * 0.1)
    second = stream.encode_chunk()
    assert (first.sequence, second.sequence) == (0, 1)
    assert decode_chunk(first).shape == (4,)
    assert stream.encode_chunk() is None


def test_closed_stream_ignores_audio():
    stream = BufferedStream(16_000, window_size=8)
    stream.close()
    stream.push(np.ones(8, dtype=np.float32))
    assert stream.active is False
    assert stream.encode_chunk() is None
    assert not stream.read_frame(8).any()


def test_missing_portaudio_is_unsupported(monkeypatch):
    monkeypatch.setitem(sys.modules, "sounddevice", None)
    backend = SoundDeviceBackend()
    with pytest.raises(UnsupportedEnvironment):
        asyncio.run(backend.open_stream(StreamConstraints()))


class _PortAudioError(Exception):
    pass


def _fake_sd(message: str):
    def input_stream(**kwargs):
        raise _PortAudioError(message)

    return SimpleNamespace(PortAudioError=_PortAudioError, InputStream=input_stream)


@pytest.mark.parametrize(
    "message, expected",
    [
        ("Permission denied by the OS", PermissionDenied),
        ("Invalid number of channels", DeviceUnavailable),
    ],
)
def test_device_errors_are_classified(message, expected):
    backend = SoundDeviceBackend()
    backend._sd = _fake_sd(message)
    with pytest.raises(expected):
        asyncio.run(backend.open_stream(StreamConstraints()))


def test_sounddevice_callback_feeds_buffer():
    created = {}

    class FakeInputStream:
        def __init__(self, **kwargs):
            created.update(kwargs)
            self.started = self.stopped = self.closed = False

        def start(self):
            self.started = True

        def stop(self):
            self.stopped = True

        def close(self):
            self.closed = True

    backend = SoundDeviceBackend()
    backend._sd = SimpleNamespace(PortAudioError=_PortAudioError, InputStream=FakeInputStream)
    stream = asyncio.run(backend.open_stream(StreamConstraints(sample_rate=16_000, block_ms=20)))

    assert created["blocksize"] == 320
    assert created["samplerate"] == 16_000
    created["callback"](np.full((320, 1), 0.5, dtype=np.float32), 320, None, None)
    assert decode_chunk(stream.encode_chunk()).shape == (320,)
    stream.close()
    assert stream.active is False
    assert stream._stream.closed is True
