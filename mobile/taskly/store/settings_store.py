"""Persistent user preferences: task store connection and voice tuning."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path

from ..config import VoiceSettings


@dataclass(slots=True)
class AppSettings:
    server_url: str = ""
    api_key: str = ""
    sensitivity: int = 3
    language: str = "en"
    chunk_ms: int = 800


class SettingsStore:
    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._settings = self._load()

    def _load(self) -> AppSettings:
        if not self.path.exists():
            return AppSettings()
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            raw = {}
        settings = AppSettings()
        settings.server_url = str(raw.get("server_url", ""))
        settings.api_key = str(raw.get("api_key", ""))
        settings.sensitivity = _clamp_sensitivity(raw.get("sensitivity", settings.sensitivity))
        settings.language = str(raw.get("language", settings.language)) or "en"
        settings.chunk_ms = int(raw.get("chunk_ms", settings.chunk_ms))
        return settings

    def get(self) -> AppSettings:
        return self._settings

    def update(self, **kwargs) -> AppSettings:
        for key, value in kwargs.items():
            if not hasattr(self._settings, key):
                continue
            if key == "sensitivity":
                setattr(self._settings, key, _clamp_sensitivity(value))
            elif isinstance(getattr(self._settings, key), int):
                setattr(self._settings, key, int(value))
            else:
                setattr(self._settings, key, value or "")
        self._persist()
        return self._settings

    def apply(self, settings: VoiceSettings) -> VoiceSettings:
        """Overlay stored voice preferences on top of environment settings."""

        return settings.model_copy(
            update={
                "sensitivity": self._settings.sensitivity,
                "language": self._settings.language,
                "chunk_ms": self._settings.chunk_ms,
            }
        )

    def _persist(self) -> None:
        self.path.write_text(json.dumps(asdict(self._settings)), encoding="utf-8")


def _clamp_sensitivity(value) -> int:
    return max(1, min(5, int(value)))
