"""Voice session controller: capture, VAD, streaming transcription and pause detection."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple

from ..audio.analyzer import AudioAnalyzer
from ..audio.capture import AudioBackend, AudioStream, StreamConstraints
from ..audio.types import TranscriptionResult
from ..audio.vad import AdaptiveVAD, VADState
from ..config import VoiceSettings, get_settings
from ..errors import SessionAlreadyActive, VoiceError
from ..metrics import SESSION_COUNTER, SESSION_DURATION
from ..services.transcriber import Transcriber
from ..store.transcript_store import TranscriptStore
from .completion import completion_confidence
from .events import (
    ErrorOccurred,
    EventChannel,
    FinalTranscript,
    PartialTranscript,
    SpeechEnded,
    SpeechStarted,
    StateChanged,
    VoiceEvent,
    VolumeChanged,
)
from .scheduler import TranscriptionScheduler

LOGGER = logging.getLogger("taskly.session")


class SessionState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    THINKING = "thinking"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class PauseTiming:
    base_ms: float = 1500.0
    confident_ms: float = 800.0
    uncertain_ms: float = 2500.0
    floor_ms: float = 500.0
    long_silence_ms: float = 2000.0
    max_reduction_ms: float = 500.0

    @classmethod
    def from_settings(cls, settings: VoiceSettings) -> "PauseTiming":
        return cls(
            base_ms=settings.pause_base_ms,
            confident_ms=settings.pause_confident_ms,
            uncertain_ms=settings.pause_uncertain_ms,
            floor_ms=settings.pause_floor_ms,
            long_silence_ms=settings.long_silence_ms,
            max_reduction_ms=settings.max_pause_reduction_ms,
        )


def natural_pause_delay(confidence: float, silence_ms: float, timing: PauseTiming = PauseTiming()) -> float:
    """How long to keep waiting (ms) before treating the current silence as the end."""

    delay = timing.base_ms
    if confidence > 0.8:
        delay = timing.confident_ms
    elif confidence < 0.5:
        delay = timing.uncertain_ms
    if silence_ms > timing.long_silence_ms:
        reduction = min(timing.max_reduction_ms, silence_ms - timing.long_silence_ms)
        delay = max(timing.floor_ms, delay - reduction)
    return delay


@dataclass
class _Session:
    stream: AudioStream
    analyzer: AudioAnalyzer
    vad: AdaptiveVAD
    scheduler: TranscriptionScheduler
    started_at: float
    tasks: List[asyncio.Task] = field(default_factory=list)
    heard_speech: bool = False
    partials: List[str] = field(default_factory=list)


class VoiceSessionController:
    """Owns one capture session at a time and turns it into a final transcript."""

    def __init__(
        self,
        backend: AudioBackend,
        transcriber: Transcriber,
        *,
        settings: Optional[VoiceSettings] = None,
        channel: Optional[EventChannel] = None,
        history: Optional[TranscriptStore] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.backend = backend
        self.transcriber = transcriber
        self.settings = settings or get_settings()
        self.events = channel or EventChannel()
        self.history = history
        self.clock = clock
        self.pause_timing = PauseTiming.from_settings(self.settings)
        self._state = SessionState.IDLE
        self._idle = asyncio.Event()
        self._idle.set()
        self._session: Optional[_Session] = None
        self._starting = False
        self._finishing: Optional[asyncio.Task] = None
        self._recovery: Optional[asyncio.Task] = None
        self._pause_timer: Optional[asyncio.TimerHandle] = None
        self._listen_timer: Optional[asyncio.TimerHandle] = None
        self._vad_state = VADState()
        self.partial_text = ""
        self.final_text = ""
        self.completion = 0.0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def vad_state(self) -> VADState:
        return self._vad_state.copy()

    @property
    def active(self) -> bool:
        return self._session is not None

    async def start(self) -> None:
        if self._starting or self._state is not SessionState.IDLE:
            current = "starting" if self._starting else self._state.value
            raise SessionAlreadyActive(f"Cannot start while {current}")
        self._starting = True
        self._idle.clear()
        self.partial_text = ""
        self.final_text = ""
        self.completion = 0.0
        try:
            stream, analyzer = await self._acquire()
        finally:
            self._starting = False

        self._session = _Session(
            stream=stream,
            analyzer=analyzer,
            vad=AdaptiveVAD(self.settings.sensitivity, adaptive=self.settings.adaptive_threshold),
            scheduler=TranscriptionScheduler(
                self.transcriber, publish=self._on_scheduler_event, language=self.settings.language
            ),
            started_at=self.clock(),
        )
        self._set_state(SessionState.LISTENING, "start")
        self._session.tasks = [
            asyncio.create_task(self._frame_loop(self._session), name="taskly-frames"),
            asyncio.create_task(self._chunk_loop(self._session), name="taskly-chunks"),
        ]
        if self.settings.listen_timeout_ms:
            loop = asyncio.get_running_loop()
            self._listen_timer = loop.call_later(
                self.settings.listen_timeout_ms / 1000.0, self._begin_finish, "listen-timeout"
            )
        LOGGER.info("Listening (sensitivity=%d)", self.settings.sensitivity)

    async def stop(self) -> Optional[TranscriptionResult]:
        if self._finishing is not None:
            return await asyncio.shield(self._finishing)
        if self._state is not SessionState.LISTENING:
            return None
        return await asyncio.shield(self._begin_finish("stop"))

    async def close(self) -> None:
        await self.stop()
        if self._recovery is not None and not self._recovery.done():
            self._recovery.cancel()
            self._recovery = None
            self._set_state(SessionState.IDLE, "close")
        await self.transcriber.cleanup()
        self.events.close()

    async def wait_until_idle(self) -> None:
        await self._idle.wait()

    async def _acquire(self) -> Tuple[AudioStream, AudioAnalyzer]:
        stream: Optional[AudioStream] = None
        try:
            await self.transcriber.initialize()
            stream = await self.backend.open_stream(
                StreamConstraints(
                    sample_rate=self.settings.sample_rate,
                    channels=self.settings.channels,
                    window_size=self.settings.fft_size,
                )
            )
            analyzer = AudioAnalyzer(
                stream,
                fft_size=self.settings.fft_size,
                smoothing=self.settings.smoothing,
            )
        except VoiceError as exc:
            if stream is not None:
                stream.close()
            self._fail(exc)
            raise
        except Exception:
            if stream is not None:
                stream.close()
            self._idle.set()
            raise
        return stream, analyzer

    def _process_frame(self, session: _Session) -> None:
        now_ms = (self.clock() - session.started_at) * 1000.0
        frame = session.analyzer.analyze_frame()
        previous = self._vad_state
        decision = session.vad.process(frame, now_ms)
        self._vad_state = decision.state
        if decision.speech_started:
            session.heard_speech = True
            self._cancel_timer("_pause_timer")
            self._cancel_timer("_listen_timer")
            self._publish(SpeechStarted(at_ms=now_ms))
        elif decision.speech_ended:
            self._publish(SpeechEnded(at_ms=now_ms, speech_ms=previous.speech_duration))
            self._arm_pause_timer()
        self._publish(
            VolumeChanged(
                volume=decision.state.volume,
                confidence=decision.state.confidence,
                background_noise=decision.state.background_noise,
            )
        )

    async def _frame_loop(self, session: _Session) -> None:
        interval = max(self.settings.frame_interval_ms, 1.0) / 1000.0
        while True:
            try:
                self._process_frame(session)
            except Exception as exc:
                kind = exc.kind if isinstance(exc, VoiceError) else VoiceError.kind
                LOGGER.error("Audio analysis failed: %s", exc)
                self._publish(ErrorOccurred(kind=kind, message=str(exc)))
                self._begin_finish("device-error")
                return
            await asyncio.sleep(interval)

    async def _chunk_loop(self, session: _Session) -> None:
        interval = max(self.settings.chunk_ms, 1) / 1000.0
        while True:
            await asyncio.sleep(interval)
            chunk = session.stream.encode_chunk()
            if chunk is not None:
                session.scheduler.submit(chunk)

    def _on_scheduler_event(self, event: VoiceEvent) -> None:
        session = self._session
        if isinstance(event, PartialTranscript) and session is not None:
            session.partials.append(event.text)
            self.partial_text = event.text
            self.completion = completion_confidence(" ".join(session.partials), event.confidence)
            if session.heard_speech and not self._vad_state.is_speaking and self._state is SessionState.LISTENING:
                self._arm_pause_timer()
        self._publish(event)

    def _arm_pause_timer(self) -> None:
        self._cancel_timer("_pause_timer")
        delay = natural_pause_delay(self.completion, self._vad_state.silence_duration, self.pause_timing)
        LOGGER.debug("Natural pause in %.0f ms (completion %.2f)", delay, self.completion)
        loop = asyncio.get_running_loop()
        self._pause_timer = loop.call_later(delay / 1000.0, self._begin_finish, "natural-pause")

    def _cancel_timer(self, name: str) -> None:
        handle = getattr(self, name)
        if handle is not None:
            handle.cancel()
            setattr(self, name, None)

    def _begin_finish(self, reason: str) -> asyncio.Task:
        if self._finishing is None:
            self._finishing = asyncio.create_task(self._finish(reason), name="taskly-finish")
        return self._finishing

    async def _finish(self, reason: str) -> Optional[TranscriptionResult]:
        session = self._session
        if session is None:
            self._finishing = None
            return None
        self._set_state(SessionState.THINKING, reason)
        result: Optional[TranscriptionResult] = None
        try:
            try:
                await self._release(session, flush=True)
            except Exception as exc:
                LOGGER.error("Could not release capture: %s", exc)
                await session.scheduler.cancel()
            else:
                try:
                    result = await session.scheduler.finish()
                except asyncio.CancelledError:
                    await session.scheduler.cancel()
                    raise
            SESSION_DURATION.observe(max(0.0, self.clock() - session.started_at))
            SESSION_COUNTER.labels(outcome=reason).inc()
            LOGGER.info("Session finished (%s)", reason)
            if result is not None:
                self.final_text = result.text.strip()
                self._publish(FinalTranscript(result=result, reason=reason))
                if self.history is not None and self.final_text:
                    try:
                        self.history.append(self.final_text)
                    except OSError as exc:
                        LOGGER.error("Could not save voice history: %s", exc)
            await asyncio.sleep(self.settings.thinking_display_ms / 1000.0)
        finally:
            self._session = None
            self._vad_state = VADState()
            self._finishing = None
            self._set_state(SessionState.IDLE, reason)
        return result

    async def _release(self, session: _Session, *, flush: bool) -> None:
        self._cancel_timer("_pause_timer")
        self._cancel_timer("_listen_timer")
        for task in session.tasks:
            task.cancel()
        for task in session.tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as exc:
                LOGGER.error("Capture loop %s failed: %s", task.get_name(), exc)
        session.tasks = []
        try:
            if flush:
                self._flush(session)
        finally:
            session.stream.close()
            session.vad.reset()
            session.analyzer.reset()

    def _flush(self, session: _Session) -> None:
        try:
            chunk = session.stream.encode_chunk()
        except Exception as exc:
            LOGGER.error("Could not encode trailing audio: %s", exc)
            return
        if chunk is not None:
            session.scheduler.submit(chunk)

    def _fail(self, exc: VoiceError) -> None:
        LOGGER.error("Voice session failed: %s", exc)
        SESSION_COUNTER.labels(outcome=exc.kind).inc()
        self._set_state(SessionState.ERROR, exc.kind)
        self._publish(ErrorOccurred(kind=exc.kind, message=str(exc)))
        self._recovery = asyncio.create_task(self._recover(), name="taskly-recover")

    async def _recover(self) -> None:
        await asyncio.sleep(self.settings.error_display_ms / 1000.0)
        self._recovery = None
        self._set_state(SessionState.IDLE, "recovered")

    def _set_state(self, state: SessionState, reason: Optional[str] = None) -> None:
        if state is self._state:
            return
        self._state = state
        if state is SessionState.IDLE:
            self._idle.set()
        else:
            self._idle.clear()
        self._publish(StateChanged(state=state.value, reason=reason))

    def _publish(self, event: VoiceEvent) -> None:
        self.events.publish(event)


__all__ = ["PauseTiming", "SessionState", "VoiceSessionController", "natural_pause_delay"]
