from __future__ import annotations

import datetime as dt
import json
import logging
from dataclasses import replace
from typing import Any, Optional

from lionlink.core.binary import ms_to_datetime
from lionlink.errors import JsonError
from lionlink.parsing.telemetry.model import (
    COFFEE,
    STEAM,
    BoilerStatusChanged,
    BoilerView,
    BoilerWidget,
    BrewingChanged,
    BrewingView,
    CommandResult,
    CommandStatus,
    MachineEvent,
    MachineSnapshot,
    MachineStatusWidget,
    PowerChanged,
    SteamChanged,
    TelemetryUpdate,
    WaterAlarmChanged,
)

logger = logging.getLogger(__name__)

WIDGET_MACHINE_STATUS = "CMMachineStatus"
WIDGET_COFFEE_BOILER = "CMCoffeeBoiler"
WIDGET_STEAM_BOILER = "CMSteamBoilerLevel"
WIDGET_NO_WATER = "CMNoWater"

POWERED_STATUSES = ("PoweredOn", "Brewing")
OFF_STATUSES = ("Off", "StandBy")
BREWING_STATUS = "Brewing"
NO_WATER_STATUS = "NoWater"


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def format_temperature(value: Any) -> Optional[str]:
    try:
        temperature = float(value)
    except (TypeError, ValueError):
        return None
    if temperature <= 0:
        return None
    return f"{temperature:.0f}°C"


def format_level(value: Any) -> Optional[str]:
    if not value:
        return None
    level = str(value)
    if level.startswith("Level"):
        return f"L{level[5:]}"
    return level


def _decode_machine(output: dict[str, Any]) -> MachineStatusWidget:
    status = _text(output.get("status"))
    started_at = None
    if status == BREWING_STATUS:
        started_at = ms_to_datetime(output.get("brewingStartTime"))
    return MachineStatusWidget(status=status, mode=_text(output.get("mode")), brewing_started_at=started_at)


def _decode_boiler(output: dict[str, Any], kind: str) -> BoilerWidget:
    if kind == COFFEE:
        target = format_temperature(output.get("targetTemperature"))
    else:
        target = format_level(output.get("targetLevel"))
    return BoilerWidget(
        status=_text(output.get("status")),
        ready_at=ms_to_datetime(output.get("readyStartTime")),
        target=target,
    )


def decode_telemetry(text: str | bytes) -> TelemetryUpdate:
    try:
        payload = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise JsonError(f"Telemetry payload is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise JsonError("Telemetry payload root is not an object")

    update = TelemetryUpdate()
    widgets = payload.get("widgets")
    for widget in widgets if isinstance(widgets, list) else []:
        if not isinstance(widget, dict):
            continue
        code = widget.get("code")
        if not code:
            continue
        output = widget.get("output")
        if not isinstance(output, dict):
            output = {}
        update.widget_codes.append(code)

        if code == WIDGET_MACHINE_STATUS:
            update.machine = _decode_machine(output)
        elif code == WIDGET_COFFEE_BOILER:
            update.coffee_boiler = _decode_boiler(output, COFFEE)
        elif code == WIDGET_STEAM_BOILER:
            update.steam_boiler = _decode_boiler(output, STEAM)
        elif code == WIDGET_NO_WATER:
            if "allarm" in output:
                update.no_water = bool(output["allarm"])

    commands = payload.get("commands")
    for command in commands if isinstance(commands, list) else []:
        if not isinstance(command, dict):
            continue
        command_id, status = command.get("id"), command.get("status")
        if command_id and status:
            update.commands.append(CommandResult(command_id=str(command_id), status=str(status)))
    return update


def _merge_boiler(previous: BoilerView, widget: Optional[BoilerWidget]) -> BoilerView:
    if widget is None:
        return previous
    return BoilerView(
        status=widget.status if widget.status is not None else previous.status,
        ready_at=widget.ready_at,
        target=widget.target,
    )


def apply_update(
    snapshot: MachineSnapshot,
    update: TelemetryUpdate,
    now: Optional[dt.datetime] = None,
) -> tuple[MachineSnapshot, list[MachineEvent]]:
    """
    Fold one decoded message into ``snapshot``.

    Widgets missing from the message leave the matching fields untouched.
    Power and brewing are recomputed whenever the machine status widget
    carries a status; the water alarm whenever the alarm widget or either
    boiler widget is present.
    """
    events: list[MachineEvent] = []
    changes: dict[str, Any] = {}

    machine = update.machine
    if machine is not None and machine.status is not None:
        changes["machine_status"] = machine.status
        if machine.mode is not None:
            changes["machine_mode"] = machine.mode
        changes["power_on"] = machine.status in POWERED_STATUSES
        active = machine.status == BREWING_STATUS
        started_at = machine.brewing_started_at if active else None
        if active and started_at is None:
            # Brewing reported without a start time: keep a known start, else use now.
            started_at = snapshot.brewing.started_at if snapshot.brewing.active else now
        changes["brewing"] = BrewingView(active=active, started_at=started_at)

    coffee = _merge_boiler(snapshot.coffee_boiler, update.coffee_boiler)
    steam = _merge_boiler(snapshot.steam_boiler, update.steam_boiler)
    changes["coffee_boiler"] = coffee
    changes["steam_boiler"] = steam

    if update.steam_boiler is not None and update.steam_boiler.status is not None:
        changes["steam_on"] = update.steam_boiler.status not in OFF_STATUSES

    if update.no_water is not None or update.coffee_boiler is not None or update.steam_boiler is not None:
        changes["water_alarm"] = (
            bool(update.no_water)
            or coffee.status == NO_WATER_STATUS
            or steam.status == NO_WATER_STATUS
        )

    if not update.is_empty:
        changes["updated_at"] = now
    new = replace(snapshot, **changes)

    if new.power_on != snapshot.power_on:
        events.append(PowerChanged(power_on=new.power_on))
    if new.steam_on != snapshot.steam_on:
        events.append(SteamChanged(steam_on=new.steam_on))
    for kind, before, after in ((COFFEE, snapshot.coffee_boiler, coffee), (STEAM, snapshot.steam_boiler, steam)):
        if before != after:
            events.append(BoilerStatusChanged(kind=kind, status=after.status, ready_at=after.ready_at, target=after.target))
    if new.brewing != snapshot.brewing:
        events.append(BrewingChanged(active=new.brewing.active, started_at=new.brewing.started_at))
    if new.water_alarm != snapshot.water_alarm:
        events.append(WaterAlarmChanged(active=new.water_alarm))
    for command in update.commands:
        events.append(CommandStatus(command_id=command.command_id, status=command.status))

    if events:
        logger.debug("telemetry_applied", extra={"details": {"events": [type(e).__name__ for e in events]}})
    return new, events
