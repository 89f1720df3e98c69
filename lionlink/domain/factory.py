from __future__ import annotations

from typing import Optional

from lionlink.clients.session import SessionManager
from lionlink.config import Settings, get_settings
from lionlink.domain.machine import MachineController
from lionlink.identity.store import IdentityStore, JsonFileBackend
from lionlink.transports.stomp.transport import StompTransport


def create_controller(
    settings: Optional[Settings] = None,
    username: Optional[str] = None,
    password: Optional[str] = None,
    machine_serial: Optional[str] = None,
) -> MachineController:
    settings = settings or get_settings()
    username = username or settings.username
    password = password or settings.password
    machine_serial = machine_serial or settings.machine_serial
    if not (username and password and machine_serial):
        raise ValueError("username, password and machine serial are required (LION_USERNAME, ...)")

    store = IdentityStore(JsonFileBackend(settings.identity_path))
    session = SessionManager(store, settings=settings)
    session.init(username, password, machine_serial)
    transport = StompTransport(session, settings=settings)
    return MachineController(session, transport, settings=settings)
