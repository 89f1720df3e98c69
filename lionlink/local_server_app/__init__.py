from lionlink.local_server_app.app import create_app
from lionlink.local_server_app.jobs import LoopJob
from lionlink.local_server_app.state import LocalServerState

__all__ = ["create_app", "LoopJob", "LocalServerState"]
