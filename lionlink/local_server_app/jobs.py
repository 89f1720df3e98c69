from __future__ import annotations

import logging
import threading
from typing import Optional

from lionlink.config import Settings
from lionlink.domain.machine import MachineController


class LoopJob:
    """Runs ``MachineController.loop()`` on a fixed cadence in a daemon thread."""

    def __init__(self, controller: MachineController, settings: Settings, logger: logging.Logger) -> None:
        self.controller = controller
        self.interval = settings.loop_interval
        self.logger = logger
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="lionlink-loop", daemon=True)
        self._thread.start()
        self.logger.info("loop_job_started", extra={"details": {"interval": self.interval}})

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.controller.loop()
            except Exception:
                self.logger.exception("loop_job_step_failed")
            self._stop.wait(self.interval)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        self.logger.info("loop_job_stopped")
