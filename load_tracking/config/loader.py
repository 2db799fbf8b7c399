# load_tracking/config/loader.py
"""
Project configuration loader.
config/config.json is the single source of truth.
Secrets and service hosts are overridden from environment variables.
"""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# =============================================================================
# PATHS
# =============================================================================

def get_project_root() -> Path:
    """Repository root directory."""
    return Path(__file__).parent.parent.parent


def get_config_path() -> Path:
    """Path to config.json. CONFIG_PATH overrides the default location."""
    override = os.getenv("CONFIG_PATH")
    if override:
        return Path(override)
    return get_project_root() / "config" / "config.json"


def load_config_json() -> dict[str, Any]:
    """Load config.json as a dict."""
    config_path = get_config_path()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        return json.load(f)


# =============================================================================
# CONFIGURATION SECTIONS
# =============================================================================

class SystemSettings(BaseModel):
    PROJECT_NAME: str = "load_tracking"
    VERSION: str = "0.3.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"
    # tracking_api, realtime_ws, web_client or services; the CLI argument wins
    COMPONENT_MODE: str = ""


class DeploymentSettings(BaseModel):
    """Hosts and ports of the deployable components."""
    TRACKING_API_HOST: str = "tracking_api"
    TRACKING_API_PORT: int = 8092
    REALTIME_WS_GATEWAY_HOST: str = "realtime_ws_gateway"
    REALTIME_WS_GATEWAY_PORT: int = 8089
    WEB_CLIENT_PORT: int = 8082

    @property
    def tracking_api_url(self) -> str:
        return f"http://{self.TRACKING_API_HOST}:{self.TRACKING_API_PORT}"

    @property
    def realtime_ws_url(self) -> str:
        return f"ws://{self.REALTIME_WS_GATEWAY_HOST}:{self.REALTIME_WS_GATEWAY_PORT}"


class LoggingSettings(BaseModel):
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = False
    LOG_FILE_PATH: str = "logs/app.log"
    LOG_FORMAT: str = "colored"
    LOG_MAX_BYTES: int = 10485760


class TrackingSettings(BaseModel):
    """Telemetry ingest and query."""
    TRACKING_INGEST_API_KEY: str = ""
    INGEST_API_KEY_HEADER: str = "x-api-key"
    QUERY_CACHE_SECONDS: int = 15

    @field_validator("TRACKING_INGEST_API_KEY", mode="before")
    @classmethod
    def get_from_env(cls, v: str | None) -> str:
        """Secret comes from the environment when not given explicitly."""
        if not v:
            return os.getenv("TRACKING_INGEST_API_KEY", "")
        return v


class GoogleMapsSettings(BaseModel):
    GOOGLE_MAPS_API_KEY: str = ""

    @field_validator("GOOGLE_MAPS_API_KEY", mode="before")
    @classmethod
    def get_from_env(cls, v: str | None) -> str:
        if not v:
            return os.getenv("GOOGLE_MAPS_API_KEY", "")
        return v


class DatabaseSettings(BaseModel):
    """PostgreSQL."""
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "load_tracking"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_MIN_POOL_SIZE: int = 2
    DB_MAX_POOL_SIZE: int = 10
    DB_COMMAND_TIMEOUT: int = 30

    @field_validator("DB_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str | None) -> str:
        if not v:
            return os.getenv("DB_PASSWORD", "")
        return v

    @property
    def dsn(self) -> str:
        return (
            f"postgresql://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


class RedisSettings(BaseModel):
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str = ""
    REDIS_MAX_CONNECTIONS: int = 50

    @field_validator("REDIS_PASSWORD", mode="before")
    @classmethod
    def get_from_env(cls, v: str | None) -> str:
        if not v:
            return os.getenv("REDIS_PASSWORD", "")
        return v

    @property
    def url(self) -> str:
        auth = f":{self.REDIS_PASSWORD}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


class RealtimeSettings(BaseModel):
    """Live channel reconnect and polling."""
    RECONNECT_INITIAL_DELAY: float = 0.5
    RECONNECT_MAX_DELAY: float = 30.0
    RECONNECT_MULTIPLIER: float = 2.0
    SUBSCRIBE_TIMEOUT: float = 10.0
    POLL_TIMEOUT: float = 1.0


# =============================================================================
# SETTINGS
# =============================================================================

class Settings(BaseSettings):
    """
    Application settings.
    Aggregates every configuration section.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    system: SystemSettings = Field(default_factory=SystemSettings)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    tracking: TrackingSettings = Field(default_factory=TrackingSettings)
    google_maps: GoogleMapsSettings = Field(default_factory=GoogleMapsSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    realtime: RealtimeSettings = Field(default_factory=RealtimeSettings)

    @classmethod
    def from_config_json(cls) -> "Settings":
        """
        Build Settings from config.json.
        Secrets and hosts are overridden from environment variables.
        """
        config_data = load_config_json()

        # Drop comment keys (_comment_*)
        filtered_data = {k: v for k, v in config_data.items() if not k.startswith("_comment_")}

        return cls(
            system=SystemSettings(
                PROJECT_NAME=filtered_data.get("PROJECT_NAME", "load_tracking"),
                VERSION=filtered_data.get("VERSION", "0.3.0"),
                DEBUG=filtered_data.get("DEBUG", False),
                LOG_LEVEL=filtered_data.get("LOG_LEVEL", "INFO"),
                ENVIRONMENT=os.getenv("ENVIRONMENT", filtered_data.get("ENVIRONMENT", "development")),
                COMPONENT_MODE=os.getenv("COMPONENT_MODE", filtered_data.get("COMPONENT_MODE", "")),
            ),
            deployment=DeploymentSettings(
                TRACKING_API_HOST=os.getenv("TRACKING_API_HOST", filtered_data.get("TRACKING_API_HOST", "tracking_api")),
                TRACKING_API_PORT=int(os.getenv("TRACKING_API_PORT", filtered_data.get("TRACKING_API_PORT", 8092))),
                REALTIME_WS_GATEWAY_HOST=os.getenv("REALTIME_WS_GATEWAY_HOST", filtered_data.get("REALTIME_WS_GATEWAY_HOST", "realtime_ws_gateway")),
                REALTIME_WS_GATEWAY_PORT=int(os.getenv("REALTIME_WS_GATEWAY_PORT", filtered_data.get("REALTIME_WS_GATEWAY_PORT", 8089))),
                WEB_CLIENT_PORT=int(os.getenv("WEB_CLIENT_PORT", filtered_data.get("WEB_CLIENT_PORT", 8082))),
            ),
            logging=LoggingSettings(
                LOG_LEVEL=filtered_data.get("LOG_LEVEL", "INFO"),
                LOG_TO_FILE=filtered_data.get("LOG_TO_FILE", False),
                LOG_FILE_PATH=filtered_data.get("LOG_FILE_PATH", "logs/app.log"),
                LOG_FORMAT=filtered_data.get("LOG_FORMAT", "json"),
                LOG_MAX_BYTES=filtered_data.get("LOG_MAX_BYTES", 10485760),
            ),
            tracking=TrackingSettings(
                TRACKING_INGEST_API_KEY=os.getenv("TRACKING_INGEST_API_KEY", ""),
                INGEST_API_KEY_HEADER=filtered_data.get("INGEST_API_KEY_HEADER", "x-api-key"),
                QUERY_CACHE_SECONDS=filtered_data.get("QUERY_CACHE_SECONDS", 15),
            ),
            google_maps=GoogleMapsSettings(
                GOOGLE_MAPS_API_KEY=os.getenv("GOOGLE_MAPS_API_KEY", ""),
            ),
            database=DatabaseSettings(
                DB_HOST=os.getenv("DB_HOST", filtered_data.get("DB_HOST", "localhost")),
                DB_PORT=int(os.getenv("DB_PORT", filtered_data.get("DB_PORT", 5432))),
                DB_NAME=os.getenv("DB_NAME", filtered_data.get("DB_NAME", "load_tracking")),
                DB_USER=os.getenv("DB_USER", filtered_data.get("DB_USER", "postgres")),
                DB_PASSWORD=os.getenv("DB_PASSWORD", ""),
                DB_MIN_POOL_SIZE=filtered_data.get("DB_MIN_POOL_SIZE", 2),
                DB_MAX_POOL_SIZE=filtered_data.get("DB_MAX_POOL_SIZE", 10),
                DB_COMMAND_TIMEOUT=filtered_data.get("DB_COMMAND_TIMEOUT", 30),
            ),
            redis=RedisSettings(
                REDIS_HOST=os.getenv("REDIS_HOST", filtered_data.get("REDIS_HOST", "localhost")),
                REDIS_PORT=int(os.getenv("REDIS_PORT", filtered_data.get("REDIS_PORT", 6379))),
                REDIS_DB=filtered_data.get("REDIS_DB", 0),
                REDIS_PASSWORD=os.getenv("REDIS_PASSWORD", ""),
                REDIS_MAX_CONNECTIONS=filtered_data.get("REDIS_MAX_CONNECTIONS", 50),
            ),
            realtime=RealtimeSettings(
                RECONNECT_INITIAL_DELAY=filtered_data.get("RECONNECT_INITIAL_DELAY", 0.5),
                RECONNECT_MAX_DELAY=filtered_data.get("RECONNECT_MAX_DELAY", 30.0),
                RECONNECT_MULTIPLIER=filtered_data.get("RECONNECT_MULTIPLIER", 2.0),
                SUBSCRIBE_TIMEOUT=filtered_data.get("SUBSCRIBE_TIMEOUT", 10.0),
                POLL_TIMEOUT=filtered_data.get("POLL_TIMEOUT", 1.0),
            ),
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Cached application settings.
    Loads .env from the project root first when present.
    """
    from dotenv import load_dotenv

    env_path = get_project_root() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    return Settings.from_config_json()


settings = get_settings()
