"""Tests for dashboard payload decoding and snapshot updates."""
import datetime as dt
import json

import pytest

from lionlink.core.binary import datetime_to_ms
from lionlink.errors import JsonError
from lionlink.parsing.telemetry import (
    BoilerStatusChanged,
    BoilerView,
    BrewingChanged,
    CommandStatus,
    MachineSnapshot,
    PowerChanged,
    SteamChanged,
    WaterAlarmChanged,
    apply_update,
    decode_telemetry,
)
from lionlink.parsing.telemetry.decode import format_level, format_temperature

NOW = dt.datetime(2025, 3, 1, 12, 0, 0, tzinfo=dt.timezone.utc)
NOW_MS = datetime_to_ms(NOW)


def _payload(*widgets, commands=None):
    body = {"widgets": [{"code": code, "output": output} for code, output in widgets]}
    if commands is not None:
        body["commands"] = commands
    return json.dumps(body)


def _apply(snapshot, text):
    return apply_update(snapshot, decode_telemetry(text), now=NOW)


def test_malformed_json_raises():
    with pytest.raises(JsonError):
        decode_telemetry("{not json")
    with pytest.raises(JsonError):
        decode_telemetry("[1, 2]")


def test_unknown_and_broken_widgets_are_ignored():
    update = decode_telemetry(json.dumps({"widgets": [{"code": "CMSomethingNew", "output": {}}, "junk", {"output": {}}]}))
    assert update.is_empty
    assert update.widget_codes == ["CMSomethingNew"]


def test_powered_on_only_leaves_boilers_unchanged():
    previous = MachineSnapshot(
        coffee_boiler=BoilerView(status="HeatingUp", ready_at=NOW, target="93°C"),
        steam_boiler=BoilerView(status="Ready", ready_at=None, target="L2"),
    )
    snapshot, events = _apply(previous, _payload(("CMMachineStatus", {"status": "PoweredOn", "mode": "BrewingMode"})))

    assert snapshot.power_on is True
    assert snapshot.machine_status == "PoweredOn"
    assert snapshot.machine_mode == "BrewingMode"
    assert snapshot.coffee_boiler == previous.coffee_boiler
    assert snapshot.steam_boiler == previous.steam_boiler
    assert events == [PowerChanged(power_on=True)]


def test_ready_time_is_absolute():
    ready_ms = NOW_MS + 65000
    snapshot, events = _apply(
        MachineSnapshot(),
        _payload(("CMCoffeeBoiler", {"status": "HeatingUp", "readyStartTime": ready_ms, "targetTemperature": 93.4})),
    )
    assert snapshot.coffee_boiler.ready_at == NOW + dt.timedelta(seconds=65)
    assert datetime_to_ms(snapshot.coffee_boiler.ready_at) == ready_ms
    assert snapshot.coffee_boiler.target == "93°C"
    assert BoilerStatusChanged("coffee", "HeatingUp", NOW + dt.timedelta(seconds=65), "93°C") in events


def test_steam_no_water_sets_alarm_without_alarm_widget():
    snapshot, events = _apply(MachineSnapshot(), _payload(("CMSteamBoilerLevel", {"status": "NoWater"})))
    assert snapshot.water_alarm is True
    assert WaterAlarmChanged(active=True) in events


def test_coffee_no_water_sets_alarm():
    snapshot, _ = _apply(MachineSnapshot(), _payload(("CMCoffeeBoiler", {"status": "NoWater"})))
    assert snapshot.water_alarm is True


def test_alarm_widget_sets_and_clears():
    snapshot, _ = _apply(MachineSnapshot(), _payload(("CMNoWater", {"allarm": True})))
    assert snapshot.water_alarm is True
    snapshot, events = _apply(snapshot, _payload(("CMNoWater", {"allarm": False})))
    assert snapshot.water_alarm is False
    assert events == [WaterAlarmChanged(active=False)]


def test_alarm_untouched_without_relevant_widgets():
    previous = MachineSnapshot(water_alarm=True)
    snapshot, events = _apply(previous, _payload(("CMMachineStatus", {"status": "PoweredOn"})))
    assert snapshot.water_alarm is True
    assert WaterAlarmChanged(active=False) not in events


def test_brewing_status_counts_as_powered_and_sets_start():
    start_ms = NOW_MS - 12000
    snapshot, events = _apply(
        MachineSnapshot(power_on=True),
        _payload(("CMMachineStatus", {"status": "Brewing", "brewingStartTime": start_ms})),
    )
    assert snapshot.power_on is True
    assert snapshot.brewing.active is True
    assert snapshot.brewing.started_at == NOW - dt.timedelta(seconds=12)
    assert BrewingChanged(active=True, started_at=NOW - dt.timedelta(seconds=12)) in events
    assert not any(isinstance(e, PowerChanged) for e in events)


def test_brewing_without_start_time_uses_now():
    snapshot, _ = _apply(MachineSnapshot(), _payload(("CMMachineStatus", {"status": "Brewing"})))
    assert snapshot.brewing.started_at == NOW


def test_brewing_ends():
    previous = MachineSnapshot(power_on=True)
    brewing, _ = _apply(previous, _payload(("CMMachineStatus", {"status": "Brewing", "brewingStartTime": NOW_MS})))
    idle, events = _apply(brewing, _payload(("CMMachineStatus", {"status": "PoweredOn"})))
    assert idle.brewing.active is False
    assert idle.brewing.started_at is None
    assert events == [BrewingChanged(active=False, started_at=None)]


def test_standby_powers_off():
    snapshot, events = _apply(MachineSnapshot(power_on=True), _payload(("CMMachineStatus", {"status": "StandBy"})))
    assert snapshot.power_on is False
    assert PowerChanged(power_on=False) in events


@pytest.mark.parametrize("status,expected", [("Ready", True), ("HeatingUp", True), ("Off", False), ("StandBy", False)])
def test_steam_state_from_boiler_status(status, expected):
    snapshot, _ = _apply(MachineSnapshot(steam_on=not expected), _payload(("CMSteamBoilerLevel", {"status": status})))
    assert snapshot.steam_on is expected


def test_steam_widget_without_status_keeps_state():
    snapshot, events = _apply(MachineSnapshot(steam_on=True), _payload(("CMSteamBoilerLevel", {"targetLevel": "Level3"})))
    assert snapshot.steam_on is True
    assert snapshot.steam_boiler.target == "L3"
    assert not any(isinstance(e, SteamChanged) for e in events)


def test_boiler_widget_replaces_ready_time():
    previous = MachineSnapshot(coffee_boiler=BoilerView(status="HeatingUp", ready_at=NOW, target="93°C"))
    snapshot, _ = _apply(previous, _payload(("CMCoffeeBoiler", {"status": "Ready"})))
    assert snapshot.coffee_boiler == BoilerView(status="Ready", ready_at=None, target=None)


def test_command_statuses_become_events():
    _, events = _apply(
        MachineSnapshot(),
        _payload(commands=[{"id": "cmd-1", "status": "Success"}, {"id": "cmd-2"}, "junk"]),
    )
    assert events == [CommandStatus(command_id="cmd-1", status="Success")]


def test_unchanged_message_emits_nothing():
    text = _payload(("CMMachineStatus", {"status": "PoweredOn"}), ("CMSteamBoilerLevel", {"status": "Ready"}))
    snapshot, _ = _apply(MachineSnapshot(), text)
    again, events = _apply(snapshot, text)
    assert events == []
    assert again == snapshot


def test_updated_at_set_only_for_meaningful_updates():
    snapshot, _ = _apply(MachineSnapshot(), json.dumps({"widgets": []}))
    assert snapshot.updated_at is None
    snapshot, _ = _apply(snapshot, _payload(("CMNoWater", {"allarm": False})))
    assert snapshot.updated_at == NOW


def test_snapshot_as_dict_is_json_ready():
    snapshot, _ = _apply(
        MachineSnapshot(),
        _payload(("CMCoffeeBoiler", {"status": "HeatingUp", "readyStartTime": NOW_MS + 1000})),
    )
    data = snapshot.as_dict()
    json.dumps(data)
    assert data["coffee_boiler"]["ready_at"] == "2025-03-01T12:00:01+00:00"


def test_target_formatting():
    assert format_temperature(93.6) == "94°C"
    assert format_temperature(0) is None
    assert format_temperature("n/a") is None
    assert format_level("Level2") == "L2"
    assert format_level("Custom") == "Custom"
    assert format_level(None) is None
