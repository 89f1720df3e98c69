"""
Command line entry point.

    lionlink provision   create (or show) the installation identity
    lionlink run         connect and print machine events until interrupted
    lionlink serve       run the local status server
"""
from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import Optional

from lionlink.clients.session import SessionManager
from lionlink.config import get_settings
from lionlink.core.binary import b64encode_str
from lionlink.domain import create_controller
from lionlink.errors import LionlinkError
from lionlink.identity.store import IdentityStore, JsonFileBackend

logger = logging.getLogger("lionlink.cli")


def _provision(args: argparse.Namespace) -> int:
    settings = get_settings()
    path = args.identity or settings.identity_path
    store = IdentityStore(JsonFileBackend(path))
    identity = store.load_or_create()
    print(f"installation_id: {identity.installation_id}")
    print(f"public_key: {b64encode_str(identity.public_key_der)}")
    print(f"stored_at: {path}")
    if args.register:
        session = SessionManager(store, settings=settings)
        session.init(settings.username or "", settings.password or "", settings.machine_serial or "")
        ok = session.register()
        print(f"registered: {ok}")
        return 0 if ok else 1
    return 0


def _run(args: argparse.Namespace) -> int:
    settings = get_settings()
    controller = create_controller(settings)

    def print_event(event) -> None:
        print(event, flush=True)

    controller.add_listener(print_event)
    controller.connect_websocket()
    if args.stats:
        controller.request_stats_refresh()
    try:
        while True:
            controller.loop()
            time.sleep(settings.loop_interval)
    except KeyboardInterrupt:
        pass
    finally:
        controller.close()
    return 0


def _serve(args: argparse.Namespace) -> int:
    from lionlink.local_server import main as serve_main

    argv = []
    if args.ip:
        argv += ["--ip", args.ip]
    if args.port:
        argv += ["--port", str(args.port)]
    serve_main(argv)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lionlink", description="La Marzocco cloud session client.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    provision = sub.add_parser("provision", help="Create or show the installation identity.")
    provision.add_argument("--identity", type=str, default=None, help="Path of the identity JSON file.")
    provision.add_argument("--register", action="store_true", help="Register the public key with the cloud.")
    provision.set_defaults(func=_provision)

    run = sub.add_parser("run", help="Connect and print machine events.")
    run.add_argument("--stats", action="store_true", help="Fetch usage counters once connected.")
    run.set_defaults(func=_run)

    serve = sub.add_parser("serve", help="Run the local status server.")
    serve.add_argument("--ip", type=str, default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.set_defaults(func=_serve)
    return parser


def main(argv: Optional[list] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    try:
        return args.func(args)
    except (LionlinkError, ValueError) as exc:
        logger.error("command_failed", extra={"details": {"error": str(exc)}})
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
