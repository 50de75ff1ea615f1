"""In-memory log lines for the on-screen log panel."""

from __future__ import annotations

import collections
import logging
import threading
from typing import Deque, List


class LogBuffer(logging.Handler):
    def __init__(self, max_lines: int = 200) -> None:
        super().__init__()
        self._lines: Deque[str] = collections.deque(maxlen=max_lines)
        self._guard = threading.Lock()
        self.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s", "%H:%M:%S"))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record)
        except Exception:
            self.handleError(record)
            return
        with self._guard:
            self._lines.append(line)

    def add(self, message: str) -> None:
        with self._guard:
            self._lines.append(message)

    def lines(self) -> List[str]:
        with self._guard:
            return list(self._lines)

    def clear(self) -> None:
        with self._guard:
            self._lines.clear()

    def install(self, logger_name: str = "taskly", level: int = logging.INFO) -> "LogBuffer":
        logger = logging.getLogger(logger_name)
        if self not in logger.handlers:
            logger.addHandler(self)
        if logger.level == logging.NOTSET or logger.level > level:
            logger.setLevel(level)
        return self
