"""
Display-neutral helpers derived from a ``MachineSnapshot``.

Nothing here renders anything; these are the numbers and phases a front end
needs for boiler countdowns and the brew timer. All times are absolute UTC,
so remaining time is always ``ready_at - now``.
"""
from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Optional

from lionlink.parsing.telemetry.model import MachineSnapshot

WARMUP_DURATION_SEC = 300
OFF_STATUSES = ("Off", "StandBy")
READY_STATUS = "Ready"


class BoilerPhase(str, Enum):
    OFF = "off"
    HEATING = "heating"
    READY = "ready"


def _now(now: Optional[dt.datetime]) -> dt.datetime:
    return now or dt.datetime.now(dt.timezone.utc)


def remaining_seconds(snapshot: MachineSnapshot, kind: str, now: Optional[dt.datetime] = None) -> int:
    """Whole seconds until the boiler reports ready; 0 or less means ready."""
    ready_at = snapshot.boiler(kind).ready_at
    if ready_at is None:
        return 0
    return int((ready_at - _now(now)) / dt.timedelta(seconds=1))


def boiler_phase(snapshot: MachineSnapshot, kind: str, now: Optional[dt.datetime] = None) -> BoilerPhase:
    if snapshot.machine_status is None or snapshot.machine_status in OFF_STATUSES:
        return BoilerPhase.OFF
    boiler = snapshot.boiler(kind)
    if boiler.status is None or boiler.status in OFF_STATUSES:
        return BoilerPhase.OFF
    if boiler.status == READY_STATUS or boiler.ready_at is None:
        return BoilerPhase.READY
    if remaining_seconds(snapshot, kind, now) <= 0:
        return BoilerPhase.READY
    return BoilerPhase.HEATING


def warmup_progress(snapshot: MachineSnapshot, kind: str, now: Optional[dt.datetime] = None) -> int:
    """Percentage of the warm-up window still to go, clamped to 0..100."""
    if boiler_phase(snapshot, kind, now) != BoilerPhase.HEATING:
        return 0
    percent = remaining_seconds(snapshot, kind, now) * 100 // WARMUP_DURATION_SEC
    return max(0, min(100, percent))


def countdown_label(snapshot: MachineSnapshot, kind: str, now: Optional[dt.datetime] = None) -> str:
    phase = boiler_phase(snapshot, kind, now)
    if phase == BoilerPhase.OFF:
        return "OFF"
    remaining = remaining_seconds(snapshot, kind, now)
    if phase == BoilerPhase.READY or remaining <= 0:
        return "READY"
    if remaining > 60:
        return f"{(remaining + 59) // 60} min"
    return f"{remaining} sec"


def brewing_elapsed(snapshot: MachineSnapshot, now: Optional[dt.datetime] = None) -> Optional[float]:
    brewing = snapshot.brewing
    if not brewing.active or brewing.started_at is None:
        return None
    elapsed = (_now(now) - brewing.started_at).total_seconds()
    return max(0.0, elapsed)
