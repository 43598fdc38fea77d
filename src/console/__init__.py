"""Stateful stores of the console control plane and their lifecycle manager."""
from .applications import (
    ApplicationAudioManager,
    ApplicationSource,
    PermissionResult,
    application_source_id,
    parse_application_source,
)
from .channels import (
    ChannelFaderGesture,
    ChannelStateCache,
    ChannelStrip,
    Committed,
    FieldState,
    InputStreamError,
    Pending,
)
from .configurations import ConfigurationStore
from .devices import Available, ConfiguredButUnavailable, DeviceChange, DeviceEntry, DeviceRegistry
from .effects import EQ_BANDS, EffectsParameterCache
from .logging_setup import configure_logging
from .session import SessionLifecycleManager

__all__ = [
    "ApplicationAudioManager",
    "ApplicationSource",
    "PermissionResult",
    "application_source_id",
    "parse_application_source",
    "ChannelFaderGesture",
    "ChannelStateCache",
    "ChannelStrip",
    "Committed",
    "FieldState",
    "InputStreamError",
    "Pending",
    "ConfigurationStore",
    "Available",
    "ConfiguredButUnavailable",
    "DeviceChange",
    "DeviceEntry",
    "DeviceRegistry",
    "EQ_BANDS",
    "EffectsParameterCache",
    "configure_logging",
    "SessionLifecycleManager",
]
