"""Headless composition of the Taskly voice core."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import httpx

from .audio.capture import AudioBackend, SoundDeviceBackend
from .config import VoiceSettings, get_settings
from .services.logger import LogBuffer
from .services.network import TaskStoreClient
from .services.task_capture import TaskCapture
from .services.transcriber import Transcriber, create_transcriber
from .store.settings_store import SettingsStore
from .store.transcript_store import TranscriptStore
from .voice.session import VoiceSessionController

LOGGER = logging.getLogger("taskly.app")


class TasklyApp:
    """Wires stores, transcriber, session controller and task capture together."""

    def __init__(
        self,
        data_dir: Path,
        *,
        settings: Optional[VoiceSettings] = None,
        backend: Optional[AudioBackend] = None,
        transcriber: Optional[Transcriber] = None,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.settings_store = SettingsStore(self.data_dir / "settings.json")
        self.settings = self.settings_store.apply(settings or get_settings())
        self.log = LogBuffer(self.settings.log_buffer_size).install()
        self.history = TranscriptStore(self.data_dir / "voice_history.json")
        self.client = TaskStoreClient(self.settings_store, client=http_client)
        self.capture = TaskCapture(self.client)
        self.controller = VoiceSessionController(
            backend or SoundDeviceBackend(),
            transcriber or create_transcriber(self.settings),
            settings=self.settings,
            history=self.history,
        )
        self._capture_task: Optional[asyncio.Task] = None

    def start_capture(self) -> None:
        if self._capture_task is None or self._capture_task.done():
            subscription = self.controller.events.subscribe()
            self._capture_task = asyncio.create_task(self.capture.run(subscription), name="taskly-capture")

    async def record_once(self) -> Optional[str]:
        """Listen until a natural pause (or the listen timeout) and return the transcript."""

        self.start_capture()
        await self.controller.start()
        await self.controller.wait_until_idle()
        LOGGER.info("Captured %r", self.controller.final_text)
        return self.controller.final_text or None

    async def shutdown(self) -> None:
        await self.controller.close()
        if self._capture_task is not None:
            await self._capture_task
            self._capture_task = None
        self.client.close()
        logging.getLogger("taskly").removeHandler(self.log)
