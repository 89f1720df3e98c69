from __future__ import annotations

import time
from typing import Callable, Optional


class ActivityMonitor:
    """
    Tracks when a person last interacted with the device and when the machine
    last changed brewing state.

    A timeout of 0 disables the corresponding check. Times come from a
    monotonic clock, so wall clock jumps do not count as activity.
    """

    def __init__(
        self,
        user_timeout: float = 300.0,
        machine_timeout: float = 1800.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.user_timeout = user_timeout
        self.machine_timeout = machine_timeout
        self.clock = clock
        now = clock()
        self.last_user_activity = now
        self.last_machine_activity = now

    def mark_user_activity(self) -> None:
        self.last_user_activity = self.clock()

    def mark_machine_activity(self) -> None:
        self.last_machine_activity = self.clock()

    @staticmethod
    def _is_inactive(last: float, timeout: float, now: float) -> bool:
        if timeout <= 0 or now < last:
            return False
        return now - last >= timeout

    def is_user_inactive(self, now: Optional[float] = None) -> bool:
        now = self.clock() if now is None else now
        return self._is_inactive(self.last_user_activity, self.user_timeout, now)

    def is_machine_inactive(self, now: Optional[float] = None) -> bool:
        now = self.clock() if now is None else now
        return self._is_inactive(self.last_machine_activity, self.machine_timeout, now)

    def as_dict(self, now: Optional[float] = None) -> dict:
        now = self.clock() if now is None else now
        return {
            "user_idle_seconds": max(0.0, now - self.last_user_activity),
            "machine_idle_seconds": max(0.0, now - self.last_machine_activity),
            "user_inactive": self.is_user_inactive(now),
            "machine_inactive": self.is_machine_inactive(now),
        }
