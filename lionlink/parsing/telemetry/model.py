from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Optional, Union

COFFEE = "coffee"
STEAM = "steam"
BOILER_KINDS = (COFFEE, STEAM)


@dataclass(frozen=True)
class BoilerView:
    status: Optional[str] = None
    ready_at: Optional[dt.datetime] = None
    target: Optional[str] = None


@dataclass(frozen=True)
class BrewingView:
    active: bool = False
    started_at: Optional[dt.datetime] = None


@dataclass(frozen=True)
class MachineSnapshot:
    power_on: bool = False
    steam_on: bool = False
    machine_status: Optional[str] = None
    machine_mode: Optional[str] = None
    coffee_boiler: BoilerView = field(default_factory=BoilerView)
    steam_boiler: BoilerView = field(default_factory=BoilerView)
    brewing: BrewingView = field(default_factory=BrewingView)
    water_alarm: bool = False
    counters: dict[str, Any] = field(default_factory=dict)
    updated_at: Optional[dt.datetime] = None

    def boiler(self, kind: str) -> BoilerView:
        if kind == COFFEE:
            return self.coffee_boiler
        if kind == STEAM:
            return self.steam_boiler
        raise ValueError(f"Unknown boiler kind: {kind}")

    def as_dict(self) -> dict[str, Any]:
        def boiler_dict(view: BoilerView) -> dict[str, Any]:
            return {
                "status": view.status,
                "ready_at": view.ready_at.isoformat() if view.ready_at else None,
                "target": view.target,
            }

        return {
            "power_on": self.power_on,
            "steam_on": self.steam_on,
            "machine_status": self.machine_status,
            "machine_mode": self.machine_mode,
            "coffee_boiler": boiler_dict(self.coffee_boiler),
            "steam_boiler": boiler_dict(self.steam_boiler),
            "brewing": {
                "active": self.brewing.active,
                "started_at": self.brewing.started_at.isoformat() if self.brewing.started_at else None,
            },
            "water_alarm": self.water_alarm,
            "counters": dict(self.counters),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


# ---- widgets decoded from one dashboard message ----
@dataclass
class MachineStatusWidget:
    status: Optional[str] = None
    mode: Optional[str] = None
    brewing_started_at: Optional[dt.datetime] = None


@dataclass
class BoilerWidget:
    status: Optional[str] = None
    ready_at: Optional[dt.datetime] = None
    target: Optional[str] = None


@dataclass
class CommandResult:
    command_id: str
    status: str


@dataclass
class TelemetryUpdate:
    machine: Optional[MachineStatusWidget] = None
    coffee_boiler: Optional[BoilerWidget] = None
    steam_boiler: Optional[BoilerWidget] = None
    no_water: Optional[bool] = None
    commands: list[CommandResult] = field(default_factory=list)
    widget_codes: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return (
            self.machine is None
            and self.coffee_boiler is None
            and self.steam_boiler is None
            and self.no_water is None
            and not self.commands
        )


# ---- events ----
@dataclass(frozen=True)
class PowerChanged:
    power_on: bool


@dataclass(frozen=True)
class SteamChanged:
    steam_on: bool


@dataclass(frozen=True)
class BoilerStatusChanged:
    kind: str
    status: Optional[str]
    ready_at: Optional[dt.datetime]
    target: Optional[str]


@dataclass(frozen=True)
class BrewingChanged:
    active: bool
    started_at: Optional[dt.datetime]


@dataclass(frozen=True)
class WaterAlarmChanged:
    active: bool


@dataclass(frozen=True)
class CommandStatus:
    command_id: str
    status: str


@dataclass(frozen=True)
class StatsUpdated:
    counters: dict[str, Any]


MachineEvent = Union[
    PowerChanged,
    SteamChanged,
    BoilerStatusChanged,
    BrewingChanged,
    WaterAlarmChanged,
    CommandStatus,
    StatsUpdated,
]
