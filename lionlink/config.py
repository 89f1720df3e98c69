from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import SettingsConfigDict, BaseSettings

from lionlink.resources import load_api_config


class Settings(BaseSettings):
    username: Optional[str] = Field(None, validation_alias="LION_USERNAME")
    password: Optional[str] = Field(None, validation_alias="LION_PASSWORD")
    machine_serial: Optional[str] = Field(None, validation_alias="LION_MACHINE_SERIAL")
    identity_path: str = Field("lionlink_identity.json", validation_alias="LION_IDENTITY_PATH")

    # Endpoint overrides; None falls back to the packaged api_config.json
    api_url: Optional[str] = Field(None, validation_alias="LION_API_URL")
    ws_host: Optional[str] = Field(None, validation_alias="LION_WS_HOST")

    token_refresh_margin: float = Field(600.0, validation_alias="TOKEN_REFRESH_MARGIN")
    http_timeout: Optional[float] = Field(None, validation_alias="HTTP_TIMEOUT")

    reconnect_interval: float = Field(30.0, validation_alias="RECONNECT_INTERVAL")
    ws_connect_timeout: float = Field(15.0, validation_alias="WS_CONNECT_TIMEOUT")
    ws_poll_timeout: float = Field(0.05, validation_alias="WS_POLL_TIMEOUT")
    ws_max_frames_per_poll: int = Field(32, validation_alias="WS_MAX_FRAMES_PER_POLL")

    stats_min_interval: float = Field(60.0, validation_alias="STATS_MIN_INTERVAL")
    user_inactivity_timeout: float = Field(300.0, validation_alias="USER_INACTIVITY_TIMEOUT")
    machine_inactivity_timeout: float = Field(1800.0, validation_alias="MACHINE_INACTIVITY_TIMEOUT")

    server_ip: str = Field("127.0.0.1", validation_alias="SERVER_IP")
    server_port: int = Field(10380, validation_alias="SERVER_PORT")
    loop_interval: float = Field(0.1, validation_alias="LOOP_INTERVAL")
    log_ring_size: int = Field(200, validation_alias="LOG_RING_SIZE")
    event_ring_size: int = Field(100, validation_alias="EVENT_RING_SIZE")

    enable_loop_job: bool = Field(True, validation_alias="ENABLE_LOOP_JOB")
    auto_connect: bool = Field(True, validation_alias="AUTO_CONNECT")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", populate_by_name=True, extra="ignore")

    @property
    def resolved_api_url(self) -> str:
        return (self.api_url or load_api_config()["LION"]["API_URL"]).rstrip("/")

    @property
    def resolved_ws_host(self) -> str:
        return self.ws_host or load_api_config()["LION"]["HOST"]

    @property
    def ws_url(self) -> str:
        return f"wss://{self.resolved_ws_host}{load_api_config()['LION']['WS_PATH']}"


@lru_cache
def get_settings() -> Settings:
    return Settings()
