from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SwitchRequest(BaseModel):
    # None toggles the current state
    enabled: Optional[bool] = None


class CommandResponse(BaseModel):
    ok: bool = True
    state: bool
    result: Any = None


class StatsResponse(BaseModel):
    queued: bool


class BoilerViewResponse(BaseModel):
    phase: str
    remaining_seconds: int
    warmup_progress: int
    label: str


class ViewsResponse(BaseModel):
    coffee: BoilerViewResponse
    steam: BoilerViewResponse
    brewing_elapsed: Optional[float] = None
    water_alarm: bool
    activity: Dict[str, Any] = Field(default_factory=dict)


class StatusResponse(BaseModel):
    connected: bool
    transport_state: str
    session_state: str
    last_error: Optional[str] = None


class EventsResponse(BaseModel):
    events: List[Dict[str, Any]] = Field(default_factory=list)
