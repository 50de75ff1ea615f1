"""Serialized chunk transcription with ordered partial results."""

from __future__ import annotations

import asyncio
import collections
import logging
import time
from typing import Callable, Deque, List, Optional

from ..audio.capture import combine_chunks
from ..audio.types import AudioChunk, TranscriptionResult
from ..errors import TranscriptionError
from ..metrics import TRANSCRIPTION_COUNTER, TRANSCRIPTION_LATENCY, TRANSCRIPTION_QUEUE_DEPTH
from ..services.transcriber import Transcriber
from .events import ErrorOccurred, PartialTranscript, VoiceEvent

LOGGER = logging.getLogger("taskly.scheduler")


class TranscriptionScheduler:
    """Feeds chunks to a single transcriber, one call at a time, in arrival order.

    Chunks submitted while a call is in flight wait in a FIFO queue. A failed
    chunk is reported and the queue keeps draining. :meth:`finish` waits for
    all outstanding work and then runs one final pass over the whole buffer.
    """

    def __init__(
        self,
        transcriber: Transcriber,
        *,
        publish: Callable[[VoiceEvent], None],
        language: Optional[str] = "en",
    ) -> None:
        self.transcriber = transcriber
        self.publish = publish
        self.language = language
        self._queue: Deque[AudioChunk] = collections.deque()
        self._buffered: List[AudioChunk] = []
        self._worker: Optional[asyncio.Task] = None
        self._busy = False
        self._finished = False

    @property
    def pending(self) -> int:
        return len(self._queue)

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def buffered(self) -> int:
        return len(self._buffered)

    def submit(self, chunk: AudioChunk) -> None:
        if self._finished:
            raise RuntimeError("Scheduler already finished")
        self._buffered.append(chunk)
        self._queue.append(chunk)
        TRANSCRIPTION_QUEUE_DEPTH.set(len(self._queue))
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain(), name="taskly-transcription")

    async def _drain(self) -> None:
        while self._queue:
            chunk = self._queue.popleft()
            TRANSCRIPTION_QUEUE_DEPTH.set(len(self._queue))
            self._busy = True
            try:
                result = await self._transcribe(chunk, phase="partial", word_timestamps=False)
            except TranscriptionError as exc:
                LOGGER.warning("Chunk %d transcription failed: %s", chunk.sequence, exc)
                self.publish(ErrorOccurred(kind=exc.kind, message=str(exc)))
                continue
            finally:
                self._busy = False
            text = result.text.strip()
            if text:
                self.publish(
                    PartialTranscript(
                        text=text,
                        confidence=result.effective_confidence,
                        sequence=chunk.sequence,
                    )
                )

    async def _transcribe(self, chunk: AudioChunk, *, phase: str, word_timestamps: bool) -> TranscriptionResult:
        start = time.perf_counter()
        try:
            result = await self.transcriber.transcribe(
                chunk,
                language=self.language,
                return_timestamps=True,
                word_timestamps=word_timestamps,
            )
        except TranscriptionError:
            TRANSCRIPTION_COUNTER.labels(phase=phase, status="error").inc()
            raise
        except Exception as exc:
            TRANSCRIPTION_COUNTER.labels(phase=phase, status="error").inc()
            raise TranscriptionError(str(exc) or type(exc).__name__) from exc
        finally:
            TRANSCRIPTION_LATENCY.labels(phase=phase).observe(time.perf_counter() - start)
        TRANSCRIPTION_COUNTER.labels(phase=phase, status="success").inc()
        return result

    async def finish(self) -> Optional[TranscriptionResult]:
        """Drain outstanding chunks, then transcribe the combined audio once."""

        self._finished = True
        while self._worker is not None and not self._worker.done():
            await asyncio.shield(self._worker)
        chunks, self._buffered = self._buffered, []
        if not chunks:
            return None
        try:
            combined = combine_chunks(chunks, sequence=chunks[-1].sequence + 1)
            if combined is None:
                return None
            return await self._transcribe(combined, phase="final", word_timestamps=True)
        except TranscriptionError as exc:
            LOGGER.error("Final transcription failed: %s", exc)
            self.publish(ErrorOccurred(kind=exc.kind, message=str(exc)))
            return None
        except Exception as exc:
            LOGGER.error("Could not assemble final audio: %s", exc)
            self.publish(ErrorOccurred(kind=TranscriptionError.kind, message=str(exc)))
            return None

    async def cancel(self) -> None:
        """Abandon queued work; used when a session is torn down abruptly."""

        self._finished = True
        self._queue.clear()
        self._buffered = []
        TRANSCRIPTION_QUEUE_DEPTH.set(0)
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None


__all__ = ["TranscriptionScheduler"]
