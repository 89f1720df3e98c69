"""
STOMP-over-WebSocket telemetry channel.

The transport is driven by ``poll()`` from a single loop; nothing here runs on
a background thread. Inbound ``MESSAGE`` bodies are handed to the registered
callbacks as raw text, and the callbacks must not call back into the session
or the transport.
"""
from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

import websocket

from lionlink.clients.session import SessionManager
from lionlink.config import Settings, get_settings
from lionlink.errors import StompFrameError, TransportError
from lionlink.resources import endpoint
from lionlink.transports.stomp.frame import StompFrame, encode

logger = logging.getLogger(__name__)

ACCEPT_VERSION = "1.2,1.1,1.0"
HEART_BEAT = "0,0"

MessageCallback = Callable[[str], None]


class WebSocketLike(Protocol):
    def connect(self, url: str, **options) -> None: ...
    def settimeout(self, timeout: Optional[float]) -> None: ...
    def recv(self): ...
    def send(self, payload: str, opcode: int = ...) -> int: ...
    def close(self, **options) -> None: ...


class TransportState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AWAITING_CONNECTED = "awaiting_connected"
    SUBSCRIBED = "subscribed"
    ERROR = "error"


@dataclass
class StompSession:
    serial_number: str
    cached_token: Optional[str] = None
    subscription_id: Optional[str] = None
    connected: bool = False


class ReconnectThrottle:
    """Allows the first attempt immediately, then at most one per ``interval`` seconds."""

    def __init__(self, interval: float = 30.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.interval = interval
        self.clock = clock
        self._last_attempt: Optional[float] = None

    def ready(self) -> bool:
        if self._last_attempt is None:
            return True
        return self.clock() - self._last_attempt >= self.interval

    def record_attempt(self) -> None:
        self._last_attempt = self.clock()

    def try_acquire(self) -> bool:
        if not self.ready():
            return False
        self.record_attempt()
        return True


class StompTransport:
    def __init__(
        self,
        session: SessionManager,
        settings: Optional[Settings] = None,
        ws_factory: Callable[[], WebSocketLike] = websocket.WebSocket,
    ) -> None:
        self.session = session
        self.settings = settings or get_settings()
        self.ws_factory = ws_factory
        self.state = TransportState.DISCONNECTED
        self.stomp: Optional[StompSession] = None
        self.last_error: Optional[str] = None
        self._ws: Optional[WebSocketLike] = None
        self._callbacks: list[MessageCallback] = []

    # ---- callbacks ----
    def register_message_callback(self, callback: MessageCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unregister() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unregister

    @property
    def is_connected(self) -> bool:
        return self.state == TransportState.SUBSCRIBED

    # ---- helpers ----
    def _send(self, command: str, headers: dict[str, str], body: str = "") -> None:
        if self._ws is None:
            raise TransportError(f"Cannot send {command}: socket is not open")
        try:
            self._ws.send(encode(command, headers, body))
        except (websocket.WebSocketException, OSError) as exc:
            raise TransportError(f"Failed to send {command}: {exc}") from exc

    def _drop(self, ws: WebSocketLike, reason: str) -> None:
        if self._ws is not ws:
            # The socket was replaced or closed while it was being read.
            logger.debug("ws_stale_error_ignored", extra={"details": {"reason": reason}})
            return
        logger.warning("ws_dropped", extra={"details": {"reason": reason}})
        self.last_error = reason
        self.disconnect()

    # ---- lifecycle ----
    def connect(self, serial_number: str) -> None:
        if self._ws is not None:
            self.disconnect()
        # Always a fresh token; never reuse one cached by a previous connection.
        token = self.session.get_access_token()
        headers = self.session.signer.build_headers(self.session.identity)
        url = self.settings.ws_url

        self.stomp = StompSession(serial_number=serial_number, cached_token=token)
        self.state = TransportState.CONNECTING
        logger.info("ws_connecting", extra={"details": {"url": url, "serial": serial_number}})
        ws = self.ws_factory()
        try:
            ws.connect(url, header=headers.as_list(), timeout=self.settings.ws_connect_timeout)
        except (websocket.WebSocketException, OSError) as exc:
            self.state = TransportState.ERROR
            self.stomp = None
            self.last_error = str(exc)
            raise TransportError(f"WebSocket connect to {url} failed: {exc}") from exc
        self._ws = ws
        try:
            self._on_open()
        except TransportError as exc:
            self.disconnect()
            self.state = TransportState.ERROR
            self.last_error = str(exc)
            raise

    def _on_open(self) -> None:
        self._send(
            "CONNECT",
            {
                "host": self.settings.resolved_ws_host,
                "accept-version": ACCEPT_VERSION,
                "heart-beat": HEART_BEAT,
                "Authorization": f"Bearer {self.stomp.cached_token}",
            },
        )
        self.state = TransportState.AWAITING_CONNECTED
        logger.info("stomp_connect_sent")

    def disconnect(self) -> None:
        ws, self._ws = self._ws, None
        stomp, self.stomp = self.stomp, None
        was_subscribed = self.state == TransportState.SUBSCRIBED
        self.state = TransportState.DISCONNECTED
        if ws is None:
            return
        if was_subscribed and stomp is not None and stomp.subscription_id:
            try:
                ws.send(encode("UNSUBSCRIBE", {"id": stomp.subscription_id}))
            except (websocket.WebSocketException, OSError) as exc:
                logger.debug("stomp_unsubscribe_failed", extra={"details": {"error": str(exc)}})
        try:
            ws.close()
        except (websocket.WebSocketException, OSError) as exc:
            logger.debug("ws_close_failed", extra={"details": {"error": str(exc)}})
        logger.info("ws_disconnected")

    # ---- I/O ----
    def poll(self) -> int:
        """Read and dispatch pending frames; returns how many socket reads were processed."""
        handled = 0
        while self._ws is not None and handled < self.settings.ws_max_frames_per_poll:
            ws = self._ws
            try:
                ws.settimeout(self.settings.ws_poll_timeout)
                raw = ws.recv()
            except websocket.WebSocketTimeoutException:
                break
            except (websocket.WebSocketException, OSError) as exc:
                self._drop(ws, f"WebSocket receive failed: {exc}")
                break
            handled += 1
            if self._ws is not ws:
                logger.debug("ws_stale_frame_ignored")
                break
            if not raw:
                if not getattr(ws, "connected", True):
                    self._drop(ws, "WebSocket closed by peer")
                    break
                continue
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8", errors="replace")
            if not raw.strip("\r\n"):
                # Heart-beat
                continue
            try:
                frame = StompFrame.from_text(raw)
            except StompFrameError as exc:
                logger.warning("stomp_frame_dropped", extra={"details": {"error": str(exc)}})
                continue
            try:
                self._dispatch(frame)
            except TransportError as exc:
                self._drop(ws, str(exc))
                break
        return handled

    def _dispatch(self, frame: StompFrame) -> None:
        if frame.command == "CONNECTED":
            self._on_connected(frame)
        elif frame.command == "MESSAGE":
            for callback in list(self._callbacks):
                try:
                    callback(frame.body)
                except Exception:
                    logger.exception("stomp_callback_failed")
        elif frame.command == "ERROR":
            message = frame.headers.get("message") or frame.body
            self.last_error = message
            logger.warning("stomp_error_frame", extra={"details": {"message": message}})
        else:
            logger.debug("stomp_frame_ignored", extra={"details": {"command": frame.command}})

    def _on_connected(self, frame: StompFrame) -> None:
        if self.state != TransportState.AWAITING_CONNECTED or self.stomp is None:
            logger.debug("stomp_unexpected_connected", extra={"details": {"state": self.state.value}})
            return
        subscription_id = str(uuid.uuid4())
        destination = endpoint("DASHBOARD_TOPIC", serial=self.stomp.serial_number)
        self._send(
            "SUBSCRIBE",
            {
                "destination": destination,
                "ack": "auto",
                "id": subscription_id,
                "content-length": "0",
            },
        )
        self.stomp.subscription_id = subscription_id
        self.stomp.connected = True
        self.state = TransportState.SUBSCRIBED
        self.last_error = None
        logger.info(
            "stomp_subscribed",
            extra={"details": {"destination": destination, "version": frame.headers.get("version")}},
        )
