"""Tests for the command line entry point."""
import json

from lionlink import cli
from lionlink.config import get_settings
from lionlink.identity.store import KEY_ID


def test_provision_creates_identity(tmp_path, capsys):
    path = tmp_path / "identity.json"
    assert cli.main(["provision", "--identity", str(path)]) == 0
    out = capsys.readouterr().out
    stored = json.loads(path.read_text(encoding="utf-8"))
    assert f"installation_id: {stored[KEY_ID]}" in out

    assert cli.main(["provision", "--identity", str(path)]) == 0
    assert f"installation_id: {stored[KEY_ID]}" in capsys.readouterr().out


def test_run_without_credentials_fails(monkeypatch, tmp_path):
    for name in ("LION_USERNAME", "LION_PASSWORD", "LION_MACHINE_SERIAL"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("LION_IDENTITY_PATH", str(tmp_path / "identity.json"))
    get_settings.cache_clear()
    try:
        assert cli.main(["run"]) == 1
    finally:
        get_settings.cache_clear()


def test_parser_requires_command():
    parser = cli.build_parser()
    args = parser.parse_args(["serve", "--port", "9000"])
    assert args.port == 9000
    assert args.func is cli._serve
