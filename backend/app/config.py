import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _parse_delays(value: Any) -> list[float] | Any:
    if value in (None, "", Ellipsis):
        return []
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
            if isinstance(parsed, (list, tuple)):
                return [float(item) for item in parsed]
            return [float(parsed)]
        except json.JSONDecodeError:
            return [float(item.strip()) for item in value.split(",") if item.strip()]
    if isinstance(value, (list, tuple)):
        return [float(item) for item in value]
    return value


class Settings(BaseSettings):
    """Realtime client settings loaded from environment variables."""

    app_name: str = Field(default="SpaceMarket Realtime", description="Human readable client name")
    environment: str = Field(default="development", description="Deployment environment name")
    log_level: str = Field(default="INFO", description="Root log level used by configure_logging")

    ws_base_url: str = Field(
        default="",
        description="Base URL of the realtime endpoint; empty means same origin as api_base_url",
    )
    api_base_url: str = Field(
        default="http://localhost:3000",
        description="Origin of the REST API serving dashboard snapshots",
    )
    session_cookie_name: str = Field(default="accessToken", description="Name of the session cookie")
    session_token: str | None = Field(
        default=None,
        description="Session token sent as the session cookie on socket and HTTP requests",
    )

    connection_timeout_seconds: float = Field(
        default=10.0, description="Socket connection timeout"
    )
    dashboard_namespace: str = Field(default="/dashboard")
    messaging_namespace: str = Field(default="/messaging")

    dashboard_reconnect_delays: Annotated[list[float], NoDecode] = Field(
        default_factory=lambda: [1.0, 2.0, 4.0, 8.0],
        description="Backoff table for dashboard reconnects, in seconds",
    )
    dashboard_max_reconnect_attempts: int = Field(default=3, ge=0)
    messaging_reconnect_delays: Annotated[list[float], NoDecode] = Field(
        default_factory=lambda: [1.0, 2.0, 4.0, 8.0, 16.0],
        description="Backoff table for messaging reconnects, in seconds",
    )
    messaging_max_reconnect_attempts: int = Field(default=5, ge=0)
    max_reconnect_delay_seconds: float = Field(
        default=30.0, description="Upper bound applied to every backoff delay"
    )

    polling_interval_seconds: float = Field(
        default=30.0, gt=0, description="Interval of the polling fallback"
    )
    http_timeout_seconds: float = Field(default=10.0, description="Timeout for snapshot requests")
    tenant_dashboard_path: str = Field(default="/api/dashboard/tenant")
    landlord_kpis_path: str = Field(default="/api/dashboard/landlord/kpis")
    broker_kpis_path: str = Field(default="/api/dashboard/broker/kpis")

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("dashboard_reconnect_delays", "messaging_reconnect_delays", mode="before")
    @classmethod
    def parse_delay_table(cls, value: Any) -> list[float] | Any:
        return _parse_delays(value)

    @field_validator("dashboard_reconnect_delays", "messaging_reconnect_delays")
    @classmethod
    def ensure_non_decreasing(cls, value: list[float]) -> list[float]:
        if not value:
            raise ValueError("reconnect delay table must not be empty")
        if any(later < earlier for earlier, later in zip(value, value[1:])):
            raise ValueError("reconnect delays must be non-decreasing")
        return value

    @field_validator("ws_base_url", "api_base_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().rstrip("/")
        return value

    @property
    def realtime_origin(self) -> str:
        return self.ws_base_url or self.api_base_url

    def session_cookies(self) -> dict[str, str]:
        if not self.session_token:
            return {}
        return {self.session_cookie_name: self.session_token}


@lru_cache
def get_settings() -> Settings:
    return Settings()
