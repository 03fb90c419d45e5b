"""Logging set-up (colored stdout + in-memory ring buffer) and structured key=value event lines."""

import logging
import sys
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# ANSI color codes
_RESET = "\033[0m"
_BOLD = "\033[1m"
_GRAY = "\033[90m"
_YELLOW = "\033[33m"
_RED = "\033[31m"
_CYAN = "\033[36m"

_LEVEL_COLORS = {
    logging.DEBUG: _GRAY,
    logging.INFO: _CYAN,
    logging.WARNING: _YELLOW,
    logging.ERROR: _RED + _BOLD,
    logging.CRITICAL: _RED + _BOLD,
}

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


class ColoredFormatter(logging.Formatter):
    """Formatter that adds colors per log level."""

    def format(self, record: logging.LogRecord) -> str:
        # Copy so other handlers (LogBuffer) see the plain level name
        record = logging.makeLogRecord(record.__dict__)
        color = _LEVEL_COLORS.get(record.levelno, _RESET)
        record.levelname = f"{color}[{record.levelname}]{_RESET}"
        return super().format(record)


class LogBuffer(logging.Handler):
    """Keeps the last `capacity` records as {timestamp, level, message} dicts for GET /api/logs."""

    def __init__(self, capacity: int = 100, level: int = logging.NOTSET):
        super().__init__(level)
        self._records: deque = deque(maxlen=capacity)
        self._buf_lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._records.maxlen or 0

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = {
                "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="seconds"),
                "level": record.levelname,
                "message": record.getMessage(),
            }
        except Exception:
            self.handleError(record)
            return
        with self._buf_lock:
            self._records.append(entry)

    def records(self) -> List[Dict[str, str]]:
        """Oldest first."""
        with self._buf_lock:
            return list(self._records)

    def clear(self) -> None:
        with self._buf_lock:
            self._records.clear()


def setup_logging(level: str = "INFO", debug: bool = False, buffer_size: int = 100) -> LogBuffer:
    """Configure colorful stdout logging and attach a LogBuffer to the root logger. Returns the buffer."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColoredFormatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
    buffer = LogBuffer(capacity=buffer_size)
    logging.root.handlers.clear()
    logging.root.addHandler(handler)
    logging.root.addHandler(buffer)
    resolved = logging.DEBUG if debug else logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        logger.warning("unknown log level %r; using INFO", level)
        resolved = logging.INFO
    logging.root.setLevel(resolved)
    # Audit middleware writes one line per request; uvicorn's access log would duplicate it
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    return buffer


def _fmt(event: str, fields: Dict[str, Any]) -> str:
    return event + " " + " ".join(f"{k}={v}" for k, v in fields.items() if v is not None)


def log_request(
    listener: str,
    method: str,
    path: str,
    status: int,
    duration_ms: float,
    client: Optional[str] = None,
) -> None:
    """Audit line for one HTTP request."""
    logger.info(
        _fmt(
            "request",
            {
                "listener": listener,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": f"{duration_ms:.1f}",
                "client": client,
            },
        )
    )


def log_config_save(name: str, value: str, refresh_count: Optional[int] = None) -> None:
    """Log a dashboard config save; values repr()'d so control characters stay on one line."""
    logger.info(_fmt("config_save", {"name": repr(name), "value": repr(value), "refresh_count": refresh_count}))
