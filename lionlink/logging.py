"""
Structured in-memory logging.

Log calls across lionlink use a short event name as the message and put
context in ``extra={"details": {...}}``. ``RingBufferHandler`` keeps the
latest records as plain dicts so the status server can serve them, with
credentials masked before they are stored.
"""
import logging
import threading
from collections import deque
from typing import Any, Deque, Dict, List, Optional

MASK = "***"

# Compared case-insensitively.
SENSITIVE_KEYS = frozenset(
    key.lower()
    for key in (
        "access_token",
        "accessToken",
        "refresh_token",
        "refreshToken",
        "cached_token",
        "password",
        "secret",
        "private_key",
        "signature",
        "Authorization",
        "X-Request-Signature",
        "X-Request-Proof",
    )
)


def _mask(value: Any) -> Any:
    if isinstance(value, dict):
        return redact(value)
    if isinstance(value, (list, tuple)):
        return [_mask(item) for item in value]
    return value


def redact(details: Optional[dict]) -> dict:
    """Return a copy of ``details`` with sensitive keys masked at any depth."""
    if not details:
        return {}
    return {
        key: MASK if str(key).lower() in SENSITIVE_KEYS else _mask(value)
        for key, value in details.items()
    }


class RingBufferHandler(logging.Handler):
    """Keeps the newest ``max_entries`` records as redacted dicts."""

    def __init__(self, max_entries: int = 200):
        super().__init__()
        self.max_entries = max_entries
        self._records: Deque[Dict[str, Any]] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        entry = {
            "event": record.getMessage(),
            "logger": record.name,
            "level": record.levelname,
            "ts": record.created,
            "details": redact(getattr(record, "details", None)),
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["error"] = repr(record.exc_info[1])
        with self._lock:
            self._records.append(entry)

    def get_events(self, min_level: int = logging.NOTSET) -> List[Dict[str, Any]]:
        with self._lock:
            records = list(self._records)
        if min_level <= logging.NOTSET:
            return records
        return [r for r in records if logging.getLevelName(r["level"]) >= min_level]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()


def create_logger(name: str, ring_size: int, level: int = logging.INFO) -> logging.Logger:
    """
    Attach a ``RingBufferHandler`` to the ``name`` logger.

    Child loggers such as ``lionlink.clients.session`` propagate into it.
    Calling this again for the same name reuses the existing buffer.
    """
    logger = logging.getLogger(name)
    if get_ring_buffer(logger) is not None:
        return logger
    logger.setLevel(level)
    handler = RingBufferHandler(max_entries=ring_size)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    logger.addHandler(handler)
    return logger


def get_ring_buffer(logger: logging.Logger) -> Optional[RingBufferHandler]:
    return next((h for h in logger.handlers if isinstance(h, RingBufferHandler)), None)
