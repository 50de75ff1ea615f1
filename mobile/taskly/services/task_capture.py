"""Consume final transcripts and file them as tasks."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional

from ..tasks.parser import ParsedTask, parse_spoken_task
from ..voice.events import FinalTranscript, Subscription
from .network import ApiError, TaskStoreClient

LOGGER = logging.getLogger("taskly.capture")


class TaskCapture:
    def __init__(
        self,
        client: TaskStoreClient,
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.client = client
        self.clock = clock
        self.created: List[ParsedTask] = []
        self.failed: List[ParsedTask] = []

    def handle_transcript(self, text: str) -> Optional[ParsedTask]:
        if not text.strip():
            return None
        task = parse_spoken_task(text, now=self.clock())
        try:
            self.client.create_task(task)
        except ApiError as exc:
            LOGGER.warning("Could not store task %r: %s", task.title, exc)
            self.failed.append(task)
            return None
        self.created.append(task)
        return task

    async def run(self, subscription: Subscription) -> None:
        """Handle every final transcript until the subscription closes."""

        async for event in subscription:
            if isinstance(event, FinalTranscript):
                await asyncio.to_thread(self.handle_transcript, event.text)


__all__ = ["TaskCapture"]
