import asyncio

import numpy as np
import pytest

from mobile.taskly.audio.capture import encode_samples
from mobile.taskly.audio.types import TranscriptionResult
from mobile.taskly.errors import TranscriptionError
from mobile.taskly.voice.events import ErrorOccurred, PartialTranscript
from mobile.taskly.voice.scheduler import TranscriptionScheduler

from conftest import tone


class SlowTranscriber:
    def __init__(self, fail_on: set[int] | None = None, fail_final: bool = False) -> None:
        self.fail_on = fail_on or set()
        self.fail_final = fail_final
        self.in_flight = 0
        self.max_in_flight = 0
        self.order: list[int] = []

    async def transcribe(self, chunk, *, language=None, return_timestamps=True, word_timestamps=False):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            if word_timestamps:
                if self.fail_final:
                    raise TranscriptionError("final pass failed")
                return TranscriptionResult(text="all of it", confidence=0.95)
            self.order.append(chunk.sequence)
            if chunk.sequence in self.fail_on:
                raise RuntimeError("model crashed")
            return TranscriptionResult(text=f"part {chunk.sequence}")
        finally:
            self.in_flight -= 1


def _chunks(count: int):
    return [encode_samples(tone(1600), 16_000, sequence) for sequence in range(count)]


def test_partials_arrive_in_order_without_overlap():
    transcriber = SlowTranscriber()
    events = []

    async def scenario():
        scheduler = TranscriptionScheduler(transcriber, publish=events.append)
        for chunk in _chunks(5):
            scheduler.submit(chunk)
        assert scheduler.buffered == 5
        return await scheduler.finish()

    result = asyncio.run(scenario())

    assert transcriber.max_in_flight == 1
    assert [event.sequence for event in events if isinstance(event, PartialTranscript)] == [0, 1, 2, 3, 4]
    assert all(event.confidence == pytest.approx(0.8) for event in events)
    assert result.text == "all of it"


def test_failed_chunk_is_reported_and_draining_continues():
    transcriber = SlowTranscriber(fail_on={1})
    events = []

    async def scenario():
        scheduler = TranscriptionScheduler(transcriber, publish=events.append)
        for chunk in _chunks(3):
            scheduler.submit(chunk)
        return await scheduler.finish()

    result = asyncio.run(scenario())

    assert transcriber.order == [0, 1, 2]
    assert isinstance(events[0], PartialTranscript) and events[0].sequence == 0
    assert isinstance(events[1], ErrorOccurred) and events[1].kind == "transcription"
    assert "model crashed" in events[1].message
    assert isinstance(events[2], PartialTranscript) and events[2].sequence == 2
    assert result is not None


def test_final_pass_failure_returns_none():
    events = []

    async def scenario():
        scheduler = TranscriptionScheduler(SlowTranscriber(fail_final=True), publish=events.append)
        for chunk in _chunks(2):
            scheduler.submit(chunk)
        return await scheduler.finish()

    assert asyncio.run(scenario()) is None
    assert isinstance(events[-1], ErrorOccurred)


def test_finish_without_audio_and_submit_after_finish():
    async def scenario():
        scheduler = TranscriptionScheduler(SlowTranscriber(), publish=lambda event: None)
        assert await scheduler.finish() is None
        with pytest.raises(RuntimeError):
            scheduler.submit(encode_samples(np.zeros(160, dtype=np.float32), 16_000, 0))

    asyncio.run(scenario())


def test_cancel_drops_queued_chunks():
    transcriber = SlowTranscriber()

    async def scenario():
        scheduler = TranscriptionScheduler(transcriber, publish=lambda event: None)
        for chunk in _chunks(4):
            scheduler.submit(chunk)
        await asyncio.sleep(0)
        await scheduler.cancel()
        assert scheduler.pending == 0
        assert scheduler.buffered == 0

    asyncio.run(scenario())
    assert len(transcriber.order) <= 1
