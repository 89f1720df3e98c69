"""
Exception hierarchy shared by every lionlink component.

``LionlinkError`` is the common base so callers driving the poll loop can
catch one type. The remaining classes map to the failure domains of the
session layer: provisioning, persisted storage, cryptography, HTTP, payload
decoding, STOMP framing and the socket itself.
"""
from __future__ import annotations

from typing import Optional


class LionlinkError(Exception):
    """Base class for all errors raised by lionlink."""
    pass


class NotProvisioned(LionlinkError):
    """Raised when no installation identity has been stored for this device."""
    pass


class StorageError(LionlinkError):
    """Raised when a persisted identity record exists but cannot be decoded."""
    pass


class CryptoError(LionlinkError):
    """Raised when key generation or a hashing primitive fails."""
    pass


class SigningError(CryptoError):
    """Raised when the private key cannot be parsed or ECDSA signing fails."""
    pass


class HttpError(LionlinkError):
    """
    Raised for a non-2xx answer from the vendor REST API.

    Attributes:
        status: The HTTP status code.
        body: The raw response text, kept for logging and diagnostics.
        endpoint: The path that was called, if known.
    """

    def __init__(self, status: int, body: str = "", endpoint: Optional[str] = None) -> None:
        self.status = status
        self.body = body
        self.endpoint = endpoint
        where = f" {endpoint}" if endpoint else ""
        super().__init__(f"HTTP {status}{where}: {body[:200]}")


class JsonError(LionlinkError):
    """Raised when a telemetry payload is not a JSON object."""
    pass


class StompFrameError(LionlinkError):
    """Raised when a STOMP frame cannot be parsed."""
    pass


class TransportError(LionlinkError):
    """Raised for socket-level failures on the REST or WebSocket connection."""
    pass


__all__ = [
    "CryptoError",
    "HttpError",
    "JsonError",
    "LionlinkError",
    "NotProvisioned",
    "SigningError",
    "StompFrameError",
    "StorageError",
    "TransportError",
]
