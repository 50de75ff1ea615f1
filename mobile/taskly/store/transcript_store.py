"""Recent voice transcripts, kept as a small JSON history."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

LOGGER = logging.getLogger("taskly.history")


class TranscriptStore:
    """Persist the most recent final transcripts (oldest dropped first)."""

    def __init__(self, path: Path, *, limit: int = 10) -> None:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        self.path = Path(path)
        self.limit = limit
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._entries = self._load()

    def append(self, text: str, timestamp: Optional[datetime] = None) -> Dict[str, str]:
        stamp = (timestamp or datetime.now(timezone.utc)).astimezone(timezone.utc)
        entry = {
            "text": text.strip(),
            "timestamp": stamp.isoformat().replace("+00:00", "Z"),
        }
        self._entries.append(entry)
        self._entries = self._entries[-self.limit :]
        self._persist()
        return entry

    def entries(self) -> List[Dict[str, str]]:
        return list(self._entries)

    def latest(self) -> Optional[Dict[str, str]]:
        return self._entries[-1] if self._entries else None

    def clear(self) -> None:
        self._entries = []
        self._persist()

    def __len__(self) -> int:
        return len(self._entries)

    def _load(self) -> List[Dict[str, str]]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOGGER.warning("Ignoring unreadable history %s: %s", self.path, exc)
            return []
        if not isinstance(raw, list):
            return []
        entries = [
            {"text": str(item.get("text", "")), "timestamp": str(item.get("timestamp", ""))}
            for item in raw
            if isinstance(item, dict)
        ]
        return entries[-self.limit :]

    def _persist(self) -> None:
        self.path.write_text(json.dumps(self._entries, ensure_ascii=False), encoding="utf-8")


__all__ = ["TranscriptStore"]
