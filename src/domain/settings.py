"""Runtime settings for the console control plane."""
from __future__ import annotations

import os
from typing import Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator

from .models import GAIN_RANGE_DB


class SettingsError(Exception):
    """Raised when environment-provided settings cannot be parsed."""


class ConsoleSettings(BaseModel):
    """Polling cadences, RPC timeout and fader bounds."""

    rpc_timeout_seconds: float = Field(10.0, gt=0.0)
    level_poll_interval: float = Field(0.1, gt=0.0)
    metrics_poll_interval: float = Field(1.0, gt=0.0)
    device_refresh_interval: float = Field(5.0, gt=0.0)
    streaming_status_interval: float = Field(2.0, gt=0.0)
    recording_status_interval: float = Field(1.0, gt=0.0)
    render_threshold: float = Field(0.001, ge=0.0)
    gain_min_db: float = GAIN_RANGE_DB[0]
    gain_max_db: float = GAIN_RANGE_DB[1]
    log_level: str = "WARNING"

    @model_validator(mode="after")
    def validate_gain_bounds(self) -> ConsoleSettings:  # type: ignore[override]
        if self.gain_min_db >= self.gain_max_db:
            raise ValueError("gain_min_db must be lower than gain_max_db")
        return self

    @classmethod
    def from_environment(cls, env: Mapping[str, str] | None = None) -> "ConsoleSettings":
        """Build settings from ``MIXCONSOLE_*`` environment variables.

        Recognised variables (all optional):

        ``MIXCONSOLE_RPC_TIMEOUT``
            Seconds before an unanswered engine call fails as a transport error.
        ``MIXCONSOLE_LEVEL_POLL_INTERVAL`` / ``MIXCONSOLE_METRICS_POLL_INTERVAL``
            Cadence of the meter and engine-metrics pollers, in seconds.
        ``MIXCONSOLE_DEVICE_REFRESH_INTERVAL``
            Cadence of background device enumeration.
        ``MIXCONSOLE_STREAMING_STATUS_INTERVAL`` / ``MIXCONSOLE_RECORDING_STATUS_INTERVAL``
            Cadence of the adjacent status monitors.
        ``MIXCONSOLE_RENDER_THRESHOLD``
            Minimum meter delta that triggers a presentation recompute.
        ``MIXCONSOLE_GAIN_MIN_DB`` / ``MIXCONSOLE_GAIN_MAX_DB``
            Fader clamp bounds.
        ``MIXCONSOLE_LOG_LEVEL``
            Default level handed to :func:`console.logging_setup.configure_logging`.
        """

        environment: Mapping[str, str]
        environment = os.environ if env is None else env
        overrides: dict[str, str] = {}
        for field_name, variable in _ENVIRONMENT_FIELDS.items():
            value: Optional[str] = environment.get(variable)
            if value is not None and value.strip():
                overrides[field_name] = value.strip()
        try:
            return cls.model_validate(overrides)
        except ValidationError as exc:
            raise SettingsError(f"Invalid console settings in environment: {exc}") from exc


_ENVIRONMENT_FIELDS = {
    "rpc_timeout_seconds": "MIXCONSOLE_RPC_TIMEOUT",
    "level_poll_interval": "MIXCONSOLE_LEVEL_POLL_INTERVAL",
    "metrics_poll_interval": "MIXCONSOLE_METRICS_POLL_INTERVAL",
    "device_refresh_interval": "MIXCONSOLE_DEVICE_REFRESH_INTERVAL",
    "streaming_status_interval": "MIXCONSOLE_STREAMING_STATUS_INTERVAL",
    "recording_status_interval": "MIXCONSOLE_RECORDING_STATUS_INTERVAL",
    "render_threshold": "MIXCONSOLE_RENDER_THRESHOLD",
    "gain_min_db": "MIXCONSOLE_GAIN_MIN_DB",
    "gain_max_db": "MIXCONSOLE_GAIN_MAX_DB",
    "log_level": "MIXCONSOLE_LOG_LEVEL",
}


__all__ = ["ConsoleSettings", "SettingsError"]
