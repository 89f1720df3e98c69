from lionlink.clients.session import SessionManager
from lionlink.config import Settings, get_settings
from lionlink.domain import ActivityMonitor, MachineController, create_controller
from lionlink.identity import IdentityStore, InstallationIdentity, JsonFileBackend, MemoryBackend, RequestSigner
from lionlink.local_server import LocalServer
from lionlink.local_server_app import create_app
from lionlink.transports.stomp import ReconnectThrottle, StompTransport
from importlib.metadata import PackageNotFoundError, version

__all__ = [
    "ActivityMonitor",
    "IdentityStore",
    "InstallationIdentity",
    "JsonFileBackend",
    "LocalServer",
    "MachineController",
    "MemoryBackend",
    "ReconnectThrottle",
    "RequestSigner",
    "SessionManager",
    "Settings",
    "StompTransport",
    "create_app",
    "create_controller",
    "get_settings",
]

try:
    __version__ = version("lionlink")
except PackageNotFoundError:
    __version__ = "0.0.0"
