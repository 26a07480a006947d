"""Runtime configuration for the buoy gateway and its clients."""
from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MIN_INTERVAL_SECONDS = 1.0
MAX_INTERVAL_SECONDS = 3600.0
DEFAULT_BACKEND_URL = "http://localhost:8000"


def _clamp_interval_seconds(value: float, *, field: str) -> float:
    try:
        parsed = float(value)
    except Exception as exc:
        raise ValueError(f"{field} must be a number") from exc
    if parsed != parsed:  # NaN
        raise ValueError(f"{field} must be a real number")
    return max(MIN_INTERVAL_SECONDS, min(parsed, MAX_INTERVAL_SECONDS))


def _normalize_base_url(value: str, *, field: str) -> str:
    cleaned = (value or "").strip().rstrip("/")
    if not cleaned:
        raise ValueError(f"{field} must not be empty")
    if "://" not in cleaned:
        cleaned = f"http://{cleaned}"
    return cleaned


class Settings(BaseSettings):
    """Environment driven settings; every field can be set with a ``BUOY_`` variable."""

    service_name: str = "buoy-gateway"
    service_version: str = "0.1.0"
    log_level: str = "INFO"
    otel_enabled: bool = False
    otel_exporter_otlp_endpoint: str = "http://127.0.0.1:4317"
    otel_exporter_otlp_headers: Optional[str] = None
    otel_sample_ratio: float = 1.0
    backend_api_base_url: str = Field(
        default=DEFAULT_BACKEND_URL,
        validation_alias=AliasChoices("BUOY_BACKEND_API_BASE_URL", "BACKEND_API_BASE_URL"),
        description="Base URL of the upstream sensor service (/temp, /pressure, /location)",
    )
    control_api_base_url: Optional[str] = Field(
        default=None,
        description="Base URL of the deployment control endpoint; defaults to the upstream service",
    )
    upstream_timeout_seconds: float = Field(default=5.0, gt=0)
    gateway_base_url: str = Field(
        default="http://localhost:9000",
        description="Where dashboard clients reach GET /buoys/{deviceId}",
    )
    gateway_timeout_seconds: float = Field(default=10.0, gt=0)
    poll_interval_seconds: float = 10.0
    synthetic_seed: Optional[int] = Field(
        default=None,
        description="Optional seed mixed into the per-buoy synthetic reading streams",
    )
    version_file: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="BUOY_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("poll_interval_seconds")
    @classmethod
    def _clamp_poll(cls, value: float) -> float:
        return _clamp_interval_seconds(value, field="poll_interval_seconds")

    @field_validator("backend_api_base_url", "gateway_base_url")
    @classmethod
    def _clean_url(cls, value: str, info) -> str:
        return _normalize_base_url(value, field=info.field_name)

    @field_validator("control_api_base_url")
    @classmethod
    def _clean_optional_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return _normalize_base_url(value, field="control_api_base_url")

    @model_validator(mode="after")
    def _populate_defaults(self):
        default_service_version = type(self).model_fields["service_version"].default
        if self.service_version == default_service_version and self.version_file:
            version_path = Path(self.version_file)
            if version_path.exists():
                try:
                    first_line = version_path.read_text(encoding="utf-8").splitlines()[0].strip()
                    if first_line:
                        self.service_version = first_line
                except Exception as exc:
                    logging.getLogger(__name__).debug("Unable to read %s: %s", version_path, exc)
        return self

    @property
    def control_base_url(self) -> str:
        return self.control_api_base_url or self.backend_api_base_url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
