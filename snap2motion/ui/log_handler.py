"""
Log handler feeding the web UI's log panel

Buffers records from the ``snap2motion`` loggers so the UI can show what
the agent is doing (connection attempts, poll status, retries).
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

PACKAGE_LOGGER = "snap2motion"


@dataclass
class LogEntry:
    """Single log entry"""
    timestamp: str
    level: str
    logger: str
    message: str

    @property
    def short_logger(self) -> str:
        """Logger name without the package prefix (``agent.retry_logic``)"""
        prefix = PACKAGE_LOGGER + "."
        return self.logger[len(prefix):] if self.logger.startswith(prefix) else self.logger

    def format(self, include_timestamp: bool = True) -> str:
        if include_timestamp:
            return f"[{self.timestamp}] [{self.level}] {self.short_logger}: {self.message}"
        return f"[{self.level}] {self.short_logger}: {self.message}"


class UILogHandler(logging.Handler):
    """
    Ring buffer of log entries for display.

    Usage:
        handler = UILogHandler().attach()
        ...
        panel_text = handler.get_logs_text(count=200)
    """

    def __init__(self, max_entries: int = 1000, level: int = logging.INFO):
        super().__init__(level)
        self.max_entries = max_entries
        self._entries: List[LogEntry] = []
        self._lock = threading.Lock()
        self._attached_to: Optional[logging.Logger] = None

    def emit(self, record: logging.LogRecord):
        try:
            entry = LogEntry(
                timestamp=datetime.now().strftime('%H:%M:%S'),
                level=record.levelname,
                logger=record.name,
                message=record.getMessage(),
            )
            with self._lock:
                self._entries.append(entry)
                if len(self._entries) > self.max_entries:
                    self._entries = self._entries[-self.max_entries:]
        except Exception:
            self.handleError(record)

    def attach(self, logger_name: str = PACKAGE_LOGGER) -> 'UILogHandler':
        """Add this handler to ``logger_name`` (the package logger by default)"""
        target = logging.getLogger(logger_name)
        if target.level == logging.NOTSET or target.level > self.level:
            target.setLevel(self.level)
        target.addHandler(self)
        self._attached_to = target
        return self

    def detach(self):
        if self._attached_to is not None:
            self._attached_to.removeHandler(self)
            self._attached_to = None

    def get_logs(self, count: Optional[int] = None, level: Optional[str] = None) -> List[LogEntry]:
        with self._lock:
            entries = self._entries.copy()

        if level:
            entries = [e for e in entries if e.level == level.upper()]
        if count:
            entries = entries[-count:]
        return entries

    def get_logs_text(self, count: Optional[int] = None) -> str:
        return '\n'.join(e.format() for e in self.get_logs(count))

    def clear(self):
        with self._lock:
            self._entries.clear()
