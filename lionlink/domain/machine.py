from __future__ import annotations

import datetime as dt
import logging
import threading
import time
from collections import deque
from dataclasses import replace
from typing import Any, Callable, Deque, Optional

from lionlink.clients.session import SessionManager, wall_clock
from lionlink.config import Settings, get_settings
from lionlink.domain.activity import ActivityMonitor
from lionlink.errors import JsonError, LionlinkError, NotProvisioned
from lionlink.parsing.telemetry import (
    MachineEvent,
    MachineSnapshot,
    PowerChanged,
    StatsUpdated,
    SteamChanged,
    apply_update,
    decode_telemetry,
)
from lionlink.resources import endpoint, load_api_config
from lionlink.transports.stomp.transport import ReconnectThrottle, StompTransport

logger = logging.getLogger(__name__)

Listener = Callable[[MachineEvent], None]

STEAM_BOILER_INDEX = 1


class MachineController:
    """
    High-level handle on one espresso machine.

    Commands go out through the signed REST session; telemetry arrives over the
    STOMP transport. The transport callback only appends raw message text to an
    inbox, and ``loop()`` drains and decodes it after polling the socket, so no
    session or transport code ever runs from inside a socket read.

    ``loop()`` must be called on a fixed cadence by one thread. Other threads
    may call the command methods and ``snapshot()``. An I/O lock serialises
    every use of the (non-reentrant) session and of the socket; a separate
    state lock only guards the snapshot swap, so readers never wait on the
    network.
    """

    def __init__(
        self,
        session: SessionManager,
        transport: StompTransport,
        settings: Optional[Settings] = None,
        activity: Optional[ActivityMonitor] = None,
        throttle: Optional[ReconnectThrottle] = None,
        clock: Callable[[], Optional[dt.datetime]] = wall_clock,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session = session
        self.transport = transport
        self.settings = settings or get_settings()
        self.activity = activity or ActivityMonitor(
            user_timeout=self.settings.user_inactivity_timeout,
            machine_timeout=self.settings.machine_inactivity_timeout,
            clock=monotonic,
        )
        self.throttle = throttle or ReconnectThrottle(self.settings.reconnect_interval, clock=monotonic)
        self.clock = clock
        self.monotonic = monotonic
        self.commands = load_api_config()["COMMANDS"]

        self._io_lock = threading.RLock()
        self._state_lock = threading.Lock()
        self._snapshot = MachineSnapshot()
        self._inbox: Deque[str] = deque()
        self._listeners: list[Listener] = []
        self._want_connected = False
        self._stats_pending = False
        self._last_stats_request: Optional[float] = None
        self._unregister_transport = transport.register_message_callback(self._inbox.append)

    # ---- state ----
    @property
    def serial_number(self) -> str:
        serial = self.session.serial_number
        if not serial:
            raise NotProvisioned("Machine serial number not set.")
        return serial

    def snapshot(self) -> MachineSnapshot:
        with self._state_lock:
            return self._snapshot

    def is_connected(self) -> bool:
        return self.transport.is_connected

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unregister() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unregister

    def _emit(self, events: list[MachineEvent]) -> None:
        for event in events:
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception:
                    logger.exception("listener_failed", extra={"details": {"event": type(event).__name__}})

    def _set_state(self, **changes: Any) -> list[MachineEvent]:
        with self._state_lock:
            before = self._snapshot
            self._snapshot = replace(before, **changes)
            after = self._snapshot
        events: list[MachineEvent] = []
        if after.power_on != before.power_on:
            events.append(PowerChanged(power_on=after.power_on))
        if after.steam_on != before.steam_on:
            events.append(SteamChanged(steam_on=after.steam_on))
        return events

    # ---- commands ----
    def _command(self, name: str, body: dict[str, Any]) -> Any:
        path = endpoint("COMMAND", serial=self.serial_number, name=self.commands[name])
        with self._io_lock:
            response = self.session.api_call("POST", path, body)
        self.activity.mark_user_activity()
        logger.info("command_ok", extra={"details": {"command": name, "body": body}})
        return response

    def set_power(self, enabled: bool) -> Any:
        response = self._command("POWER", {"mode": "BrewingMode" if enabled else "StandBy"})
        self._emit(self._set_state(power_on=enabled))
        return response

    def toggle_power(self) -> Any:
        return self.set_power(not self.snapshot().power_on)

    def set_steam(self, enabled: bool) -> Any:
        response = self._command("STEAM", {"boilerIndex": STEAM_BOILER_INDEX, "enabled": enabled})
        self._emit(self._set_state(steam_on=enabled))
        return response

    def toggle_steam(self) -> Any:
        return self.set_steam(not self.snapshot().steam_on)

    def request_stats_refresh(self) -> bool:
        """Queue a counters query for the next ``loop()``; False when debounced."""
        now = self.monotonic()
        with self._state_lock:
            if (
                self._last_stats_request is not None
                and now - self._last_stats_request < self.settings.stats_min_interval
            ):
                return False
            self._last_stats_request = now
            self._stats_pending = True
        return True

    def _fetch_stats(self) -> None:
        path = endpoint("COUNTERS", serial=self.serial_number)
        with self._state_lock:
            self._stats_pending = False
        with self._io_lock:
            data = self.session.api_call("GET", path)
        counters = data if isinstance(data, dict) else {"data": data}
        with self._state_lock:
            self._snapshot = replace(self._snapshot, counters=dict(counters))
        logger.info("stats_updated", extra={"details": {"keys": sorted(counters)}})
        self._emit([StatsUpdated(counters=counters)])

    # ---- websocket ----
    def connect_websocket(self) -> bool:
        with self._io_lock:
            self._want_connected = True
            self.throttle.record_attempt()
            try:
                self.transport.connect(self.serial_number)
            except LionlinkError as exc:
                logger.warning("ws_connect_failed", extra={"details": {"error": str(exc)}})
                return False
        return True

    def disconnect_websocket(self) -> None:
        with self._io_lock:
            self._want_connected = False
            self.transport.disconnect()
            self._inbox.clear()

    def _maybe_reconnect(self) -> None:
        with self._io_lock:
            if not self._want_connected or self.transport.is_connected:
                return
            if not self.throttle.try_acquire():
                return
            logger.info("ws_reconnecting")
            try:
                self.transport.connect(self.serial_number)
            except LionlinkError as exc:
                logger.warning("ws_connect_failed", extra={"details": {"error": str(exc)}})

    # ---- poll loop ----
    def _drain_inbox(self) -> int:
        processed = 0
        while self._inbox:
            text = self._inbox.popleft()
            processed += 1
            try:
                update = decode_telemetry(text)
            except JsonError as exc:
                logger.warning("telemetry_dropped", extra={"details": {"error": str(exc)}})
                continue
            with self._state_lock:
                before = self._snapshot
                self._snapshot, events = apply_update(before, update, now=self.clock())
                after = self._snapshot
            if after.brewing.active != before.brewing.active:
                self.activity.mark_machine_activity()
            self._emit(events)
        return processed

    def loop(self) -> int:
        """Drive socket I/O, telemetry decoding, reconnects and queued stats; returns messages processed."""
        with self._io_lock:
            self.transport.poll()
        processed = self._drain_inbox()
        try:
            self._maybe_reconnect()
            if self._stats_pending:
                self._fetch_stats()
        except LionlinkError as exc:
            logger.warning("loop_step_failed", extra={"details": {"error": str(exc)}})
        return processed

    def close(self) -> None:
        self.disconnect_websocket()
        self._unregister_transport()
        self._listeners.clear()
        logger.info("controller_closed")
