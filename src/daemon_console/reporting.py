from __future__ import annotations

import json
import logging
import sys
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import IO, Any, Deque, Dict, List, Optional

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

_RESET = "\033[0m"
_COLORS = {
    "SUCCESS": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
}


@dataclass
class ReportedEvent:
    timestamp: str
    level: str
    message: str
    extra: Dict[str, Any] = field(default_factory=dict)


class InMemoryReportStore:
    """Thread-safe buffer of reported events, oldest first."""

    def __init__(self, max_events: int = 1000):
        self._events: Deque[ReportedEvent] = deque(maxlen=max_events)
        self._lock = Lock()

    def append(self, event: ReportedEvent) -> None:
        with self._lock:
            self._events.append(event)

    def list(self, level: Optional[str] = None) -> List[ReportedEvent]:
        with self._lock:
            events = list(self._events)
        if level is None:
            return events
        return [event for event in events if event.level == level]

    def messages(self) -> List[str]:
        return [event.message for event in self.list()]


class ConsoleReporter:
    """Progress and result output for the console run.

    Callers pick a severity (info, success, warning, error); how a severity is rendered
    (ANSI color or a JSON line) is decided by the formatter only.
    """

    def __init__(
        self,
        name: str = "daemon_console.console",
        level: int = logging.INFO,
        stream: Optional[IO[str]] = None,
        json_output: bool = False,
        color: Optional[bool] = None,
        store: Optional[InMemoryReportStore] = None,
    ):
        stream = stream or sys.stdout
        self.logger = logging.getLogger(name)
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
        handler = logging.StreamHandler(stream)
        if json_output:
            handler.setFormatter(_JsonFormatter())
        else:
            if color is None:
                color = bool(getattr(stream, "isatty", lambda: False)())
            handler.setFormatter(_ConsoleFormatter(color=color))
        self.logger.addHandler(handler)
        self.logger.setLevel(level)
        self.logger.propagate = False
        self.store = store

    def _log(self, level: int, message: str, **kwargs: Any) -> None:
        if self.store is not None:
            self.store.append(self._build_event(level, message, **kwargs))
        self.logger.log(level, message, extra={"extra": kwargs})

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(logging.INFO, message, **kwargs)

    def success(self, message: str, **kwargs: Any) -> None:
        self._log(SUCCESS, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, **kwargs)

    def _build_event(self, level: int, message: str, **kwargs: Any) -> ReportedEvent:
        return ReportedEvent(
            timestamp=datetime.now(timezone.utc).isoformat(),
            level=logging.getLevelName(level),
            message=message,
            extra=dict(kwargs),
        )


def configure_logging(verbose: bool = False) -> None:
    """Diagnostics from library modules go to stderr, away from the console output."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # msal and httpx are chatty at DEBUG; only surface them when asked for.
    for noisy in ("msal", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.DEBUG if verbose else logging.WARNING)


class _ConsoleFormatter(logging.Formatter):
    def __init__(self, color: bool = False):
        super().__init__("%(message)s")
        self.color = color

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        text = super().format(record)
        start = _COLORS.get(record.levelname) if self.color else None
        if start:
            return f"{start}{text}{_RESET}"
        return text


class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
        }

        extra: Optional[Dict[str, Any]] = getattr(record, "extra", None)  # type: ignore[attr-defined]
        if extra:
            payload.update(extra)

        return json.dumps(payload, default=str)
