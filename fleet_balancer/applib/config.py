from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FleetConfig(BaseModel):
    """Immutable knobs handed to every engine and to the controller."""

    model_config = ConfigDict(frozen=True)

    per_server_capacity: int = Field(10, ge=0)
    max_utilization_percent: float = Field(70, gt=0)
    min_utilization_percent: float = Field(20, ge=0, le=100)
    overutilized_tolerance_percent: float = Field(10, ge=0)
    service_name: str = "ws-app"
    collaborator_timeout_seconds: float = Field(5.0, gt=0)

    @model_validator(mode="after")
    def validate_thresholds(self) -> "FleetConfig":
        if self.min_utilization_percent >= self.max_utilization_percent:
            raise ValueError("min_utilization_percent must be lower than max_utilization_percent")
        return self


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # .env is loaded into os.environ by get_settings(); only the environment is read here
        env_ignore_empty=True,
        case_sensitive=True,
        extra="ignore",
    )

    # Decision engine
    PER_SERVER_CAPACITY: int = Field(10, ge=0)
    MAX_UTILIZATION_PERCENT: float = Field(70, gt=0)
    MIN_UTILIZATION_PERCENT: float = Field(20, ge=0, le=100)
    OVERUTILIZED_TOLERANCE_PERCENT: float = Field(10, ge=0)
    REGISTRY_SERVICE_NAME: str = "ws-app"

    # Scheduling
    SCALE_INTERVAL_SECONDS: float = Field(10, gt=0)
    REBALANCE_INTERVAL_SECONDS: float = Field(30, gt=0)
    COLLABORATOR_TIMEOUT_SECONDS: float = Field(5, gt=0)

    # Session store
    REDIS_URL: str = "redis://127.0.0.1:6379/0"
    SESSION_KEY_PREFIX: str = "WsSession"
    DROP_SESSIONS_CHANNEL: str = "drop-persistent-sessions"

    # Registry
    CONSUL_URL: str = "http://127.0.0.1:8500"

    # Provisioner
    DOCKER_URL: str = "http://127.0.0.1:2375"
    DOCKER_SOCKET_PATH: Optional[str] = None
    DOCKER_SERVICE_LABEL: str = "com.docker.compose.service=ws-app"

    # Admin surface
    AUTH_API_KEY: Optional[str] = None
    HOST: str = "0.0.0.0"
    PORT: int = 8080
    LOG_LEVEL: str = "INFO"

    @model_validator(mode="after")
    def validate_thresholds(self) -> "Settings":
        if self.MIN_UTILIZATION_PERCENT >= self.MAX_UTILIZATION_PERCENT:
            raise ValueError("MIN_UTILIZATION_PERCENT must be lower than MAX_UTILIZATION_PERCENT")
        return self

    def fleet_config(self) -> FleetConfig:
        return FleetConfig(
            per_server_capacity=self.PER_SERVER_CAPACITY,
            max_utilization_percent=self.MAX_UTILIZATION_PERCENT,
            min_utilization_percent=self.MIN_UTILIZATION_PERCENT,
            overutilized_tolerance_percent=self.OVERUTILIZED_TOLERANCE_PERCENT,
            service_name=self.REGISTRY_SERVICE_NAME,
            collaborator_timeout_seconds=self.COLLABORATOR_TIMEOUT_SECONDS,
        )


def _load_dotenv() -> None:
    from dotenv import load_dotenv

    # First .env found wins; existing environment variables are never overridden.
    current_dir = Path(__file__).resolve().parent
    env_paths = [
        current_dir.parent.parent / ".env",  # project root
        current_dir.parent / ".env",  # fleet_balancer/.env
        Path(os.getcwd()) / ".env",
    ]
    for env_path in env_paths:
        if env_path.exists():
            load_dotenv(env_path, override=False)
            return


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Returns the process-wide settings.

    Built on first use so that secrets loaded by env_bootstrap are visible.
    """

    global _settings
    if _settings is None:
        _load_dotenv()
        _settings = Settings()
    return _settings
