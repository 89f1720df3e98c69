from lionlink.parsing.telemetry.decode import apply_update, decode_telemetry
from lionlink.parsing.telemetry.model import (
    BoilerStatusChanged,
    BoilerView,
    BrewingChanged,
    BrewingView,
    CommandStatus,
    MachineEvent,
    MachineSnapshot,
    PowerChanged,
    StatsUpdated,
    SteamChanged,
    TelemetryUpdate,
    WaterAlarmChanged,
)
from lionlink.parsing.telemetry.view import (
    BoilerPhase,
    boiler_phase,
    brewing_elapsed,
    countdown_label,
    remaining_seconds,
    warmup_progress,
)

__all__ = [
    "apply_update",
    "decode_telemetry",
    "BoilerPhase",
    "BoilerStatusChanged",
    "BoilerView",
    "BrewingChanged",
    "BrewingView",
    "CommandStatus",
    "MachineEvent",
    "MachineSnapshot",
    "PowerChanged",
    "StatsUpdated",
    "SteamChanged",
    "TelemetryUpdate",
    "WaterAlarmChanged",
    "boiler_phase",
    "brewing_elapsed",
    "countdown_label",
    "remaining_seconds",
    "warmup_progress",
]
