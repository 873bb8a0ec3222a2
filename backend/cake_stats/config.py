import os
from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .services.history import MIN_CAPACITY


class Settings(BaseModel):
    """Runtime configuration, read from CAKE_STATS_* environment variables"""
    poll_interval: float = Field(default=1.0, gt=0)  # seconds
    history_size: int = 300  # samples kept per interface
    tc_binary: str = "tc"
    tc_timeout: float = Field(default=5.0, gt=0)
    tc_json: str = "off"  # "off", "on" or "auto" (probe once at startup)
    container: Optional[str] = None  # run tc inside this docker container
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 11112

    @field_validator("history_size")
    @classmethod
    def _min_history(cls, value: int) -> int:
        return max(value, MIN_CAPACITY)

    @field_validator("tc_json")
    @classmethod
    def _json_mode(cls, value: str) -> str:
        value = value.lower()
        if value not in ("off", "on", "auto"):
            raise ValueError("tc_json must be one of off, on, auto")
        return value

    @classmethod
    def from_env(cls) -> "Settings":
        values = {}
        env = {
            "poll_interval": "CAKE_STATS_POLL_INTERVAL",
            "history_size": "CAKE_STATS_HISTORY",
            "tc_binary": "CAKE_STATS_TC_BINARY",
            "tc_timeout": "CAKE_STATS_TC_TIMEOUT",
            "tc_json": "CAKE_STATS_TC_JSON",
            "container": "CAKE_STATS_CONTAINER",
            "log_level": "CAKE_STATS_LOG_LEVEL",
            "host": "CAKE_STATS_HOST",
            "port": "CAKE_STATS_PORT",
        }
        for field, variable in env.items():
            if os.getenv(variable):
                values[field] = os.environ[variable]

        origins = os.getenv("CAKE_STATS_CORS_ORIGINS")
        if origins:
            values["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]

        return cls(**values)


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
