"""Tests for the REST session and token lifecycle (mocked HTTP)."""
import datetime as dt
import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from lionlink.clients.session import AccessToken, SessionManager, SessionState
from lionlink.errors import HttpError, NotProvisioned, TransportError
from lionlink.identity.store import IdentityStore, MemoryBackend

T0 = dt.datetime(2025, 3, 1, 12, 0, 0, tzinfo=dt.timezone.utc)
API = "https://api.test/api/customer-app"


def _response(status=200, payload=None, text=None):
    resp = MagicMock()
    resp.status_code = status
    if payload is not None:
        resp.text = json.dumps(payload)
        resp.json.return_value = payload
    else:
        resp.text = text or ""
        resp.json.side_effect = ValueError("no json")
    return resp


def _token_payload(access="acc-1", refresh="ref-1", expires_in=3600):
    return {"accessToken": access, "refreshToken": refresh, "expiresIn": expires_in}


def _session(store, settings, clock):
    session = SessionManager(store, settings=settings, clock=clock)
    session.init("barista@example.com", "hunter2", "GS012345")
    session.registered = True
    return session


def _urls(mock_request):
    return [c.kwargs["url"] for c in mock_request.call_args_list]


def test_init_without_identity_raises(settings, clock):
    session = SessionManager(IdentityStore(MemoryBackend()), settings=settings, clock=clock)
    with pytest.raises(NotProvisioned):
        session.init("u", "p", "SN")
    assert session.state == SessionState.UNINITIALIZED


def test_get_access_token_before_init_raises(store, settings, clock):
    with pytest.raises(NotProvisioned):
        SessionManager(store, settings=settings, clock=clock).get_access_token()


@patch("lionlink.clients.session.requests.request")
def test_first_token_signs_in(mock_request, store, settings, clock):
    mock_request.return_value = _response(200, _token_payload())
    session = _session(store, settings, clock)

    assert session.get_access_token() == "acc-1"
    assert session.state == SessionState.ACTIVE
    assert session.token.expires_at == T0 + dt.timedelta(seconds=3600)

    call = mock_request.call_args
    assert call.args[0] == "POST"
    assert call.kwargs["url"] == f"{API}/auth/signin"
    assert call.kwargs["json"] == {"username": "barista@example.com", "password": "hunter2"}
    headers = call.kwargs["headers"]
    for name in ("X-App-Installation-Id", "X-Timestamp", "X-Nonce", "X-Request-Signature"):
        assert headers[name]
    assert "Authorization" not in headers
    assert call.kwargs["timeout"] == 5.0


@patch("lionlink.clients.session.requests.request")
def test_token_far_from_expiry_is_reused(mock_request, store, settings, clock):
    session = _session(store, settings, clock)
    session.token = AccessToken("cached", "ref", T0 + dt.timedelta(seconds=3600))
    assert session.get_access_token() == "cached"
    mock_request.assert_not_called()


@patch("lionlink.clients.session.requests.request")
def test_token_inside_margin_is_refreshed(mock_request, store, settings, clock):
    mock_request.return_value = _response(200, _token_payload(access="acc-2", refresh="ref-2"))
    session = _session(store, settings, clock)
    session.token = AccessToken("cached", "ref-1", T0 + dt.timedelta(seconds=5))

    assert session.get_access_token() == "acc-2"
    assert _urls(mock_request) == [f"{API}/auth/refreshtoken"]
    assert mock_request.call_args.kwargs["json"] == {"username": "barista@example.com", "refreshToken": "ref-1"}
    assert session.token.refresh_token == "ref-2"


@patch("lionlink.clients.session.requests.request")
def test_refresh_keeps_previous_refresh_token(mock_request, store, settings, clock):
    mock_request.return_value = _response(200, {"accessToken": "acc-2", "expiresIn": 3600})
    session = _session(store, settings, clock)
    session.token = AccessToken("cached", "ref-1", T0 + dt.timedelta(seconds=5))
    session.get_access_token()
    assert session.token.refresh_token == "ref-1"


@patch("lionlink.clients.session.requests.request")
def test_refresh_failure_falls_back_to_sign_in(mock_request, store, settings, clock):
    mock_request.side_effect = [_response(401, text="expired"), _response(200, _token_payload(access="fresh"))]
    session = _session(store, settings, clock)
    session.token = AccessToken("cached", "ref-1", T0 + dt.timedelta(seconds=5))

    assert session.get_access_token() == "fresh"
    assert _urls(mock_request) == [f"{API}/auth/refreshtoken", f"{API}/auth/signin"]


@patch("lionlink.clients.session.requests.request")
def test_expired_token_skips_refresh(mock_request, store, settings, clock):
    mock_request.return_value = _response(200, _token_payload())
    session = _session(store, settings, clock)
    session.token = AccessToken("old", "ref-1", T0 - dt.timedelta(seconds=1))
    session.get_access_token()
    assert _urls(mock_request) == [f"{API}/auth/signin"]


@patch("lionlink.clients.session.requests.request")
def test_no_wall_clock_forces_sign_in(mock_request, store, settings, clock):
    mock_request.return_value = _response(200, _token_payload())
    session = _session(store, settings, clock)
    session.token = AccessToken("cached", "ref-1", T0 + dt.timedelta(hours=1))
    clock.now = None

    assert session.get_access_token() == "acc-1"
    assert _urls(mock_request) == [f"{API}/auth/signin"]
    assert session.token.expires_at is None


@patch("lionlink.clients.session.requests.request")
def test_sign_in_failure_is_unauthenticated(mock_request, store, settings, clock):
    mock_request.return_value = _response(403, text="bad credentials")
    session = _session(store, settings, clock)

    with pytest.raises(HttpError) as info:
        session.get_access_token()
    assert info.value.status == 403
    assert info.value.body == "bad credentials"
    assert session.state == SessionState.UNAUTHENTICATED
    assert session.token is None


@patch("lionlink.clients.session.requests.request")
def test_network_error_becomes_transport_error(mock_request, store, settings, clock):
    mock_request.side_effect = requests.ConnectionError("unreachable")
    session = _session(store, settings, clock)
    with pytest.raises(TransportError):
        session.sign_in()


@patch("lionlink.clients.session.requests.request")
def test_register_success(mock_request, store, settings, clock, identity):
    mock_request.return_value = _response(201, text="")
    session = SessionManager(store, settings=settings, clock=clock)
    session.init("u", "p", "SN")

    assert session.register() is True
    assert session.registered is True
    call = mock_request.call_args
    assert call.kwargs["url"] == f"{API}/auth/init"
    headers = call.kwargs["headers"]
    assert headers["X-App-Installation-Id"] == identity.installation_id
    assert len(headers["X-Request-Proof"]) == 44
    assert "X-Request-Signature" not in headers
    assert call.kwargs["json"]["pk"]


@patch("lionlink.clients.session.requests.request")
def test_register_failure_is_soft_and_retried(mock_request, store, settings, clock):
    mock_request.side_effect = [
        _response(500, text="oops"),
        _response(500, text="still down"),
        _response(200, _token_payload()),
    ]
    session = SessionManager(store, settings=settings, clock=clock)
    session.init("u", "p", "SN")

    assert session.register() is False
    assert session.get_access_token() == "acc-1"
    assert _urls(mock_request) == [f"{API}/auth/init", f"{API}/auth/init", f"{API}/auth/signin"]
    assert session.registered is False


@patch("lionlink.clients.session.requests.request")
def test_register_network_error_is_soft(mock_request, store, settings, clock):
    mock_request.side_effect = requests.Timeout("slow")
    session = SessionManager(store, settings=settings, clock=clock)
    session.init("u", "p", "SN")
    assert session.register() is False


@patch("lionlink.clients.session.requests.request")
def test_api_call_attaches_bearer_and_decodes(mock_request, store, settings, clock):
    session = _session(store, settings, clock)
    session.token = AccessToken("tok", "ref", T0 + dt.timedelta(hours=1))
    mock_request.return_value = _response(200, {"ok": True})

    assert session.api_call("post", "/things/GS012345/command/X", {"a": 1}) == {"ok": True}
    call = mock_request.call_args
    assert call.args[0] == "POST"
    assert call.kwargs["headers"]["Authorization"] == "Bearer tok"
    assert call.kwargs["headers"]["X-Request-Signature"]
    assert call.kwargs["json"] == {"a": 1}


@patch("lionlink.clients.session.requests.request")
def test_api_call_empty_body_returns_none(mock_request, store, settings, clock):
    session = _session(store, settings, clock)
    session.token = AccessToken("tok", "ref", T0 + dt.timedelta(hours=1))
    mock_request.return_value = _response(204, text="")
    assert session.api_call("DELETE", "/x") is None


@patch("lionlink.clients.session.requests.request")
def test_api_call_get_sends_no_body(mock_request, store, settings, clock):
    session = _session(store, settings, clock)
    session.token = AccessToken("tok", "ref", T0 + dt.timedelta(hours=1))
    mock_request.return_value = _response(200, [])
    session.api_call("GET", "/x", {"ignored": True})
    assert mock_request.call_args.kwargs["json"] is None


@patch("lionlink.clients.session.requests.request")
def test_api_call_non_2xx_raises(mock_request, store, settings, clock):
    session = _session(store, settings, clock)
    session.token = AccessToken("tok", "ref", T0 + dt.timedelta(hours=1))
    mock_request.return_value = _response(401, text="nope")

    with pytest.raises(HttpError) as info:
        session.api_call("POST", "/x")
    assert info.value.status == 401
    assert session.token is None


def test_api_call_rejects_unknown_method(store, settings, clock):
    session = _session(store, settings, clock)
    with pytest.raises(ValueError):
        session.api_call("PATCH", "/x")


def test_access_token_needs_refresh_rules():
    margin = dt.timedelta(seconds=600)
    assert AccessToken("a", "r", T0 + dt.timedelta(seconds=5)).needs_refresh(T0, margin)
    assert not AccessToken("a", "r", T0 + dt.timedelta(seconds=3600)).needs_refresh(T0, margin)
    assert AccessToken("a", "r", None).needs_refresh(T0, margin)
    assert AccessToken("a", "r", T0 + dt.timedelta(hours=1)).needs_refresh(None, margin)
