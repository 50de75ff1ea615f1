"""Typed voice-session events and the channel that carries them."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from ..audio.types import TranscriptionResult

LOGGER = logging.getLogger("taskly.events")


@dataclass(frozen=True, slots=True)
class StateChanged:
    state: str
    reason: Optional[str] = None


@dataclass(frozen=True, slots=True)
class SpeechStarted:
    at_ms: float


@dataclass(frozen=True, slots=True)
class SpeechEnded:
    at_ms: float
    speech_ms: float


@dataclass(frozen=True, slots=True)
class VolumeChanged:
    volume: float
    confidence: float
    background_noise: float


@dataclass(frozen=True, slots=True)
class PartialTranscript:
    text: str
    confidence: float
    sequence: int


@dataclass(frozen=True, slots=True)
class FinalTranscript:
    result: TranscriptionResult
    reason: str

    @property
    def text(self) -> str:
        return self.result.text


@dataclass(frozen=True, slots=True)
class ErrorOccurred:
    kind: str
    message: str


VoiceEvent = Union[
    StateChanged,
    SpeechStarted,
    SpeechEnded,
    VolumeChanged,
    PartialTranscript,
    FinalTranscript,
    ErrorOccurred,
]

_CLOSED = object()


class Subscription:
    """Ordered, unbounded view of the events published after subscribing."""

    def __init__(self, channel: "EventChannel") -> None:
        self._channel = channel
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    def _deliver(self, item) -> None:
        self._queue.put_nowait(item)

    def drain(self) -> List[VoiceEvent]:
        """Return every event delivered so far without waiting."""

        events: List[VoiceEvent] = []
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return events
            if item is _CLOSED:
                self._closed = True
                return events
            events.append(item)

    async def get(self) -> VoiceEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            self._closed = True
            raise StopAsyncIteration
        return item

    def close(self) -> None:
        self._channel.unsubscribe(self)
        self._deliver(_CLOSED)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> VoiceEvent:
        if self._closed:
            raise StopAsyncIteration
        return await self.get()


class EventChannel:
    """Fan-out of voice events to every active subscription."""

    def __init__(self) -> None:
        self._subscriptions: List[Subscription] = []
        self._closed = False

    def subscribe(self) -> Subscription:
        subscription = Subscription(self)
        if self._closed:
            subscription._deliver(_CLOSED)
        else:
            self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def publish(self, event: VoiceEvent) -> None:
        if self._closed:
            LOGGER.debug("Dropping %s published after close", type(event).__name__)
            return
        for subscription in list(self._subscriptions):
            subscription._deliver(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for subscription in self._subscriptions:
            subscription._deliver(_CLOSED)
        self._subscriptions.clear()


__all__ = [
    "ErrorOccurred",
    "EventChannel",
    "FinalTranscript",
    "PartialTranscript",
    "SpeechEnded",
    "SpeechStarted",
    "StateChanged",
    "Subscription",
    "VoiceEvent",
    "VolumeChanged",
]
