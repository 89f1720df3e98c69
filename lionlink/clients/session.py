"""
REST session for the La Marzocco customer-app API.

Handles installation registration, sign-in, token refresh and generic
authenticated calls. Every request carries the signed installation headers
from ``RequestSigner``; authenticated calls add a bearer token which this
class keeps fresh. Tokens only live in memory and are re-derived by signing
in again after a restart.

The manager is not reentrant: one logical session per machine, and callers
must serialise access.
"""
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

import requests

from lionlink.config import Settings, get_settings
from lionlink.core.binary import b64encode_str
from lionlink.errors import HttpError, JsonError, LionlinkError, NotProvisioned, TransportError
from lionlink.identity.signer import HEADER_INSTALLATION_ID, HEADER_PROOF, RequestSigner
from lionlink.identity.store import IdentityStore, InstallationIdentity
from lionlink.resources import endpoint, load_api_config

logger = logging.getLogger(__name__)

ALLOWED_METHODS = ("GET", "POST", "PUT", "DELETE")

# Anything before this is a clock that has not been synced yet.
_MIN_VALID_WALL_CLOCK = dt.datetime(2020, 1, 1, tzinfo=dt.timezone.utc)


def wall_clock() -> Optional[dt.datetime]:
    now = dt.datetime.now(dt.timezone.utc)
    if now < _MIN_VALID_WALL_CLOCK:
        return None
    return now


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    SIGNING_IN = "signing_in"
    ACTIVE = "active"
    REFRESHING = "refreshing"
    UNAUTHENTICATED = "unauthenticated"


@dataclass
class AccessToken:
    """
    Bearer credentials returned by sign-in or refresh.

    Attributes:
        access_token: The short-lived bearer token.
        refresh_token: Token accepted by ``/auth/refreshtoken``.
        expires_at: Absolute UTC expiry, or None when no wall clock was
            available at issue time.
    """
    access_token: str
    refresh_token: str
    expires_at: Optional[dt.datetime]

    def needs_refresh(self, now: Optional[dt.datetime], margin: dt.timedelta) -> bool:
        if not self.access_token or now is None or self.expires_at is None:
            return True
        return self.expires_at < now + margin

    def is_expired(self, now: Optional[dt.datetime]) -> bool:
        if now is None or self.expires_at is None:
            return True
        return self.expires_at <= now


class SessionManager:
    def __init__(
        self,
        store: IdentityStore,
        settings: Optional[Settings] = None,
        signer: Optional[RequestSigner] = None,
        clock: Callable[[], Optional[dt.datetime]] = wall_clock,
    ) -> None:
        self.store = store
        self.settings = settings or get_settings()
        self.signer = signer or RequestSigner()
        self.clock = clock
        self.api_url = self.settings.resolved_api_url
        self.user_agent = load_api_config()["LION"]["USER_AGENT"]
        self.refresh_margin = dt.timedelta(seconds=self.settings.token_refresh_margin)

        self.state = SessionState.UNINITIALIZED
        self.token: Optional[AccessToken] = None
        self.registered = False
        self._identity: Optional[InstallationIdentity] = None
        self._username: Optional[str] = None
        self._password: Optional[str] = None
        self.serial_number: Optional[str] = None

    # ---- lifecycle ----
    def init(self, username: str, password: str, serial_number: str) -> None:
        identity = self.store.load()
        if identity is None:
            raise NotProvisioned("No installation identity stored; provision the device first.")
        self._identity = identity
        self._username = username
        self._password = password
        self.serial_number = serial_number
        self.token = None
        self.state = SessionState.INITIALIZED
        logger.info("session_initialized", extra={"details": {"serial": serial_number}})

    @property
    def identity(self) -> InstallationIdentity:
        if self._identity is None:
            raise NotProvisioned("Session not initialised with an installation identity.")
        return self._identity

    @property
    def is_initialized(self) -> bool:
        return self.state != SessionState.UNINITIALIZED

    # ---- helpers ----
    def _headers(self, bearer: Optional[str] = None) -> dict[str, str]:
        headers = {
            "User-Agent": self.user_agent,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        headers.update(self.signer.build_headers(self.identity).as_dict())
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        return headers

    def _request(self, method: str, path: str, headers: dict[str, str], body: Any = None) -> requests.Response:
        try:
            return requests.request(
                method,
                url=f"{self.api_url}{path}",
                headers=headers,
                json=body,
                timeout=self.settings.http_timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc

    @staticmethod
    def _json(response: requests.Response, path: str) -> Any:
        if not response.text:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise JsonError(f"Invalid JSON from {path}: {exc}") from exc

    def _token_from(self, data: Any, path: str, previous_refresh: str = "") -> AccessToken:
        if not isinstance(data, dict) or not data.get("accessToken"):
            raise JsonError(f"Response from {path} has no accessToken")
        try:
            expires_in = int(data.get("expiresIn") or 0)
        except (TypeError, ValueError):
            expires_in = 0
        now = self.clock()
        return AccessToken(
            access_token=str(data["accessToken"]),
            refresh_token=str(data.get("refreshToken") or previous_refresh),
            expires_at=now + dt.timedelta(seconds=expires_in) if now is not None else None,
        )

    # ---- operations ----
    def register(self) -> bool:
        identity = self.identity
        path = endpoint("REGISTER")
        headers = {
            "User-Agent": self.user_agent,
            "Content-Type": "application/json",
            HEADER_INSTALLATION_ID: identity.installation_id,
            HEADER_PROOF: self.signer.sign(identity, self.signer.base_string(identity)),
        }
        try:
            response = self._request("POST", path, headers, {"pk": b64encode_str(identity.public_key_der)})
        except TransportError as exc:
            logger.warning("register_failed", extra={"details": {"error": str(exc)}})
            return False
        if 200 <= response.status_code < 300:
            self.registered = True
            logger.info("register_ok", extra={"details": {"installation_id": identity.installation_id}})
            return True
        logger.warning(
            "register_failed",
            extra={"details": {"status": response.status_code, "body": response.text[:200]}},
        )
        return False

    def sign_in(self) -> AccessToken:
        path = endpoint("SIGN_IN")
        self.state = SessionState.SIGNING_IN
        try:
            response = self._request(
                "POST", path, self._headers(), {"username": self._username, "password": self._password}
            )
            if response.status_code != 200:
                raise HttpError(response.status_code, response.text, path)
            self.token = self._token_from(self._json(response, path), path)
        except LionlinkError:
            self.token = None
            self.state = SessionState.UNAUTHENTICATED
            logger.error("sign_in_failed", exc_info=True)
            raise
        self.state = SessionState.ACTIVE
        logger.info("sign_in_ok", extra={"details": {"expires_at": str(self.token.expires_at)}})
        return self.token

    def refresh(self) -> AccessToken:
        if self.token is None or not self.token.refresh_token:
            return self.sign_in()
        path = endpoint("REFRESH")
        previous = self.token.refresh_token
        self.state = SessionState.REFRESHING
        response = self._request(
            "POST", path, self._headers(), {"username": self._username, "refreshToken": previous}
        )
        if response.status_code != 200:
            raise HttpError(response.status_code, response.text, path)
        self.token = self._token_from(self._json(response, path), path, previous_refresh=previous)
        self.state = SessionState.ACTIVE
        logger.info("token_refresh_ok", extra={"details": {"expires_at": str(self.token.expires_at)}})
        return self.token

    def get_access_token(self) -> str:
        if not self.is_initialized:
            raise NotProvisioned("Session not initialised.")
        now = self.clock()
        token = self.token
        if token is not None and not token.needs_refresh(now, self.refresh_margin):
            return token.access_token

        if token is not None and token.refresh_token and not token.is_expired(now):
            try:
                return self.refresh().access_token
            except LionlinkError as exc:
                logger.warning("token_refresh_failed", extra={"details": {"error": str(exc)}})

        if not self.registered:
            self.register()
        return self.sign_in().access_token

    def api_call(self, method: str, path: str, body: Any = None) -> Any:
        method = method.upper()
        if method not in ALLOWED_METHODS:
            raise ValueError(f"Unsupported HTTP method: {method}")
        bearer = self.get_access_token()
        response = self._request(method, path, self._headers(bearer), body if method != "GET" else None)
        if not 200 <= response.status_code < 300:
            if response.status_code == 401 and self.token is not None:
                # Force a fresh sign-in on the next call.
                self.token = None
            logger.warning(
                "api_call_failed",
                extra={"details": {"method": method, "path": path, "status": response.status_code}},
            )
            raise HttpError(response.status_code, response.text, path)
        return self._json(response, path)
