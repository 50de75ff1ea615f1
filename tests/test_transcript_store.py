import json
from datetime import datetime, timezone

from mobile.taskly.store.transcript_store import TranscriptStore


def test_keeps_last_ten_transcripts(tmp_path):
    path = tmp_path / "history" / "voice.json"
    store = TranscriptStore(path)
    for index in range(12):
        store.append(f"  note {index} ", timestamp=datetime(2024, 1, 1, 0, 0, index, tzinfo=timezone.utc))

    texts = [entry["text"] for entry in store.entries()]
    assert texts == [f"note {index}" for index in range(2, 12)]
    assert store.latest()["timestamp"] == "2024-01-01T00:00:11Z"

    reloaded = TranscriptStore(path)
    assert len(reloaded) == 10
    assert json.loads(path.read_text())[0]["text"] == "note 2"


def test_clear_and_unreadable_file(tmp_path):
    path = tmp_path / "voice.json"
    path.write_text("[broken")
    store = TranscriptStore(path)
    assert store.entries() == []
    store.append("hello")
    store.clear()
    assert TranscriptStore(path).latest() is None
