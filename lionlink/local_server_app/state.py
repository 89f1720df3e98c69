from __future__ import annotations

import dataclasses
import datetime as dt
import threading
import time
from collections import deque
from typing import Any, Deque, Dict, List

from lionlink.domain.machine import MachineController
from lionlink.parsing.telemetry import MachineEvent


def _jsonable(value: Any) -> Any:
    if isinstance(value, dt.datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class LocalServerState:
    """Keeps the most recent machine events for the status API."""

    def __init__(self, controller: MachineController, event_ring_size: int = 100) -> None:
        self.controller = controller
        self._events: Deque[Dict[str, Any]] = deque(maxlen=event_ring_size)
        self._lock = threading.Lock()
        self._unregister = controller.add_listener(self.record_event)

    def record_event(self, event: MachineEvent) -> None:
        entry = {
            "event": type(event).__name__,
            "ts": time.time(),
            "data": _jsonable(dataclasses.asdict(event)),
        }
        with self._lock:
            self._events.append(entry)

    def events(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._events)

    def close(self) -> None:
        self._unregister()
