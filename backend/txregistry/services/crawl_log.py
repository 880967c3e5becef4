"""In-memory crawl log: a bounded ring buffer mirrored to stdlib logging."""

import logging
from collections import deque
from datetime import datetime, timezone

from txregistry.schemas.crawl import LogEntry, LogLevel

logger = logging.getLogger("txregistry.crawl")

MAX_LOG_ENTRIES = 1000

_LOGGING_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class CrawlLog:
    """Keeps the latest crawl log entries, oldest dropped first."""

    def __init__(self, capacity: int = MAX_LOG_ENTRIES):
        self._entries: deque[LogEntry] = deque(maxlen=capacity)

    def add(self, level: LogLevel, message: str, source: str = "") -> LogEntry:
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc),
            level=level,
            message=message,
            source=source,
        )
        self._entries.append(entry)
        if source:
            logger.log(_LOGGING_LEVELS[level], "%s [%s]", message, source)
        else:
            logger.log(_LOGGING_LEVELS[level], "%s", message)
        return entry

    def info(self, message: str, source: str = "") -> LogEntry:
        return self.add(LogLevel.INFO, message, source)

    def warn(self, message: str, source: str = "") -> LogEntry:
        return self.add(LogLevel.WARN, message, source)

    def error(self, message: str, source: str = "") -> LogEntry:
        return self.add(LogLevel.ERROR, message, source)

    def debug(self, message: str, source: str = "") -> LogEntry:
        return self.add(LogLevel.DEBUG, message, source)

    def clear(self) -> None:
        self._entries.clear()

    def latest(self, limit: int = 100) -> list[LogEntry]:
        """Return up to ``limit`` most recent entries, oldest first."""
        if limit <= 0:
            return []
        entries = list(self._entries)
        return entries[-limit:]

    def __len__(self) -> int:
        return len(self._entries)
