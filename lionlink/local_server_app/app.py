from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Callable, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse

from lionlink.config import Settings, get_settings
from lionlink.domain.machine import MachineController
from lionlink.errors import HttpError, LionlinkError, NotProvisioned
from lionlink.local_server_app.jobs import LoopJob
from lionlink.local_server_app.models import (
    BoilerViewResponse,
    CommandResponse,
    EventsResponse,
    StatsResponse,
    StatusResponse,
    SwitchRequest,
    ViewsResponse,
)
from lionlink.local_server_app.state import LocalServerState
from lionlink.logging import create_logger, get_ring_buffer
from lionlink.parsing.telemetry import (
    boiler_phase,
    brewing_elapsed,
    countdown_label,
    remaining_seconds,
    warmup_progress,
)
from lionlink.parsing.telemetry.model import COFFEE, STEAM


def _run_command(action: Callable[[], Any]) -> Any:
    try:
        return action()
    except NotProvisioned as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except HttpError as exc:
        raise HTTPException(status_code=502, detail={"status": exc.status, "body": exc.body[:200]}) from exc
    except LionlinkError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


def create_app(controller: MachineController, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    logger = create_logger("lionlink", ring_size=settings.log_ring_size)
    state = LocalServerState(controller, event_ring_size=settings.event_ring_size)
    job = LoopJob(controller, settings, logger)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.auto_connect:
            controller.connect_websocket()
        if settings.enable_loop_job:
            job.start()
        yield
        job.stop()
        controller.disconnect_websocket()
        state.close()

    app = FastAPI(title="lionlink status server", lifespan=lifespan)
    app.state.controller = controller
    app.state.server_state = state
    app.state.loop_job = job

    @app.get("/health", response_class=PlainTextResponse)
    def health() -> str:
        return "ok"

    @app.get("/status", response_model=StatusResponse)
    def status() -> StatusResponse:
        return StatusResponse(
            connected=controller.is_connected(),
            transport_state=controller.transport.state.value,
            session_state=controller.session.state.value,
            last_error=controller.transport.last_error,
        )

    @app.get("/snapshot")
    def snapshot() -> dict:
        return controller.snapshot().as_dict()

    @app.get("/views", response_model=ViewsResponse)
    def views() -> ViewsResponse:
        snap = controller.snapshot()
        now = controller.clock()

        def boiler(kind: str) -> BoilerViewResponse:
            return BoilerViewResponse(
                phase=boiler_phase(snap, kind, now).value,
                remaining_seconds=max(0, remaining_seconds(snap, kind, now)),
                warmup_progress=warmup_progress(snap, kind, now),
                label=countdown_label(snap, kind, now),
            )

        return ViewsResponse(
            coffee=boiler(COFFEE),
            steam=boiler(STEAM),
            brewing_elapsed=brewing_elapsed(snap, now),
            water_alarm=snap.water_alarm,
            activity=controller.activity.as_dict(),
        )

    @app.get("/events", response_model=EventsResponse)
    def events() -> EventsResponse:
        return EventsResponse(events=state.events())

    @app.get("/logs", response_model=EventsResponse)
    def logs() -> EventsResponse:
        ring = get_ring_buffer(logger)
        return EventsResponse(events=ring.get_events() if ring else [])

    @app.post("/power", response_model=CommandResponse)
    def power(request: SwitchRequest) -> CommandResponse:
        if request.enabled is None:
            result = _run_command(controller.toggle_power)
        else:
            result = _run_command(lambda: controller.set_power(request.enabled))
        return CommandResponse(state=controller.snapshot().power_on, result=result)

    @app.post("/steam", response_model=CommandResponse)
    def steam(request: SwitchRequest) -> CommandResponse:
        if request.enabled is None:
            result = _run_command(controller.toggle_steam)
        else:
            result = _run_command(lambda: controller.set_steam(request.enabled))
        return CommandResponse(state=controller.snapshot().steam_on, result=result)

    @app.post("/stats", response_model=StatsResponse)
    def stats() -> StatsResponse:
        return StatsResponse(queued=controller.request_stats_refresh())

    @app.post("/connect", response_model=StatusResponse)
    def connect() -> StatusResponse:
        controller.connect_websocket()
        return status()

    @app.post("/disconnect", response_model=StatusResponse)
    def disconnect() -> StatusResponse:
        controller.disconnect_websocket()
        return status()

    return app
