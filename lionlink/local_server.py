import argparse
import sys
from typing import Optional

import uvicorn

from lionlink.config import Settings, get_settings
from lionlink.domain import MachineController, create_controller
from lionlink.local_server_app import create_app


class LocalServer:
    def __init__(self, controller: MachineController, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self.controller = controller
        self.app = create_app(controller, settings=self.settings)

    def start(self) -> None:
        uvicorn.run(self.app, host=self.settings.server_ip, port=self.settings.server_port, log_level="info")


def main(argv: Optional[list] = None):
    parser = argparse.ArgumentParser(description="Start the lionlink status server.")
    parser.add_argument("--ip", type=str, default=None, help="IP address to bind the status server to.")
    parser.add_argument("--port", type=int, default=None, help="Port to run the status server on.")
    args = parser.parse_args(argv)

    overrides = {}
    if args.ip:
        overrides["server_ip"] = args.ip
    if args.port:
        overrides["server_port"] = args.port
    settings = get_settings().model_copy(update=overrides)
    server = LocalServer(create_controller(settings), settings)
    server.start()


if __name__ == "__main__":
    sys.exit(main())
