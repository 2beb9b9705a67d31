"""Logging for the dashboard.

Modules log through one of the `omo.<namespace>` loggers so entries can be
filtered by area. Recent entries are kept in memory and served by
/api/logs; the level can be changed while the server runs.
"""

import logging
import os
import sys
from collections import deque
from dataclasses import asdict, dataclass
from typing import Optional

from .utils import format_iso_no_ms

LOGGER_PREFIX = 'omo'

NAMESPACES = {
    'storage': 'Storage Backends',
    'derive': 'Derivation Engine',
    'api': 'API Routes',
    'paths': 'Path Guard',
}

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR')


def namespace_of(logger_name: str) -> str:
    """Namespace of a logger name: 'omo.storage' -> 'storage', others -> 'general'."""
    prefix, _, rest = logger_name.partition('.')
    namespace = rest.split('.', 1)[0]
    if prefix == LOGGER_PREFIX and namespace in NAMESPACES:
        return namespace
    return 'general'


def parse_level(level: str | int) -> int:
    """Resolve a level name or number.

    Raises:
        ValueError: If a name is not one of LOG_LEVELS
    """
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name not in LOG_LEVELS:
        raise ValueError(f"Invalid log level {level}")
    return getattr(logging, name)


@dataclass
class LogEntry:
    timestamp: str
    level: str
    namespace: str
    message: str


class LogBufferHandler(logging.Handler):
    """Keeps the newest `buffer_size` records as LogEntry values."""

    def __init__(self, buffer_size: int = 500):
        super().__init__()
        self.buffer: deque[LogEntry] = deque(maxlen=max(1, buffer_size))

    def emit(self, record: logging.LogRecord):
        try:
            self.buffer.append(LogEntry(
                timestamp=format_iso_no_ms(record.created * 1000),
                level=record.levelname,
                namespace=namespace_of(record.name),
                message=self.format(record),
            ))
        except Exception:
            self.handleError(record)

    def get_history(self, count: int = 100, namespace: Optional[str] = None) -> list[dict]:
        """Newest `count` entries, oldest first, optionally for one namespace."""
        if count <= 0:
            return []
        entries = [e for e in self.buffer if namespace is None or e.namespace == namespace]
        return [asdict(e) for e in entries[-count:]]


_buffer_handler: Optional[LogBufferHandler] = None


def get_buffer_handler() -> LogBufferHandler:
    """Process-wide buffer handler, sized by OMO_LOG_BUFFER_SIZE."""
    global _buffer_handler
    if _buffer_handler is None:
        _buffer_handler = LogBufferHandler(int(os.environ.get('OMO_LOG_BUFFER_SIZE', '500')))
        _buffer_handler.setFormatter(logging.Formatter('%(message)s'))
    return _buffer_handler


def _apply_level(level: int) -> None:
    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers:
        handler.setLevel(level)
    for namespace in NAMESPACES:
        logging.getLogger(f'{LOGGER_PREFIX}.{namespace}').setLevel(level)


def setup_logging(level: str | int | None = None) -> None:
    """Log to stdout and the in-memory buffer.

    Args:
        level: Level name or number (default: OMO_LOG_LEVEL, else INFO)
    """
    if level is None:
        env_level = os.environ.get('OMO_LOG_LEVEL', 'INFO').upper()
        level = env_level if env_level in LOG_LEVELS else 'INFO'
    log_level = parse_level(level)

    root = logging.getLogger()
    root.handlers.clear()
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    root.addHandler(console)
    root.addHandler(get_buffer_handler())
    _apply_level(log_level)

    # one line per polled request otherwise
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def set_log_level(level: str | int) -> None:
    """Change the level of the root logger, its handlers and every namespace."""
    _apply_level(parse_level(level))


def get_logger(name: str, namespace: Optional[str] = None) -> logging.Logger:
    """`omo.<namespace>` logger for a known namespace, else the logger for name."""
    if namespace in NAMESPACES:
        return logging.getLogger(f'{LOGGER_PREFIX}.{namespace}')
    return logging.getLogger(name)
