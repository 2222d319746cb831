"""Configuration management using Pydantic Settings."""

import json
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, TypeAdapter, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from candlefleet.domain.models import DEFAULT_PORT, HostSpec


class HostSettings(BaseModel):
    """One worker host. List order is priority order (first = highest)."""

    address: str = Field(min_length=1, description="Hostname or IP of the worker")
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535)
    threads: int = Field(default=1, ge=0, description="Concurrent jobs the host may run")

    def to_spec(self) -> HostSpec:
        return HostSpec(address=self.address, port=self.port, threads=self.threads)


class FleetSettings(BaseSettings):
    """Fleet configuration, read from CANDLEFLEET_* environment variables and .env."""

    model_config = SettingsConfigDict(
        env_prefix="CANDLEFLEET_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    hosts: list[HostSettings] = Field(
        default_factory=list,
        description="Worker hosts in priority order (JSON list in the environment)",
    )

    http_timeout_s: float = Field(default=20.0, gt=0, description="Per-request timeout")

    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per request when the host answers 429",
    )

    import_padding_s: int = Field(
        default=86_400,
        ge=0,
        description="Seconds added on both sides of every gap import",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")

    json_logs: bool = Field(default=False, description="Render logs as JSON lines")

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v

    def host_specs(self) -> list[HostSpec]:
        return [h.to_spec() for h in self.hosts]


_HOSTS = TypeAdapter(list[HostSettings])


def load_hosts_file(path: str | Path) -> list[HostSettings]:
    """Read a JSON list of {address, port, threads} objects."""
    with open(path, "r") as f:
        return _HOSTS.validate_python(json.load(f))


_settings: FleetSettings | None = None


def get_settings() -> FleetSettings:
    global _settings
    if _settings is None:
        _settings = FleetSettings()
    return _settings


def reload_settings() -> FleetSettings:
    """Force a fresh read of the environment (tests)."""
    global _settings
    _settings = FleetSettings()
    return _settings
