"""Telemetry polling, meter storage and render throttling."""
from .meters import MixerLevelStore, MixerTelemetryService, parse_channel_levels, parse_master_levels
from .poller import Poller, PollerState
from .render_filter import RENDER_THRESHOLD, RenderChangeFilter, should_render, vu_segments
from .status import StatusMonitor, recording_status_monitor, streaming_status_monitor

__all__ = [
    "MixerLevelStore",
    "MixerTelemetryService",
    "parse_channel_levels",
    "parse_master_levels",
    "Poller",
    "PollerState",
    "RENDER_THRESHOLD",
    "RenderChangeFilter",
    "should_render",
    "vu_segments",
    "StatusMonitor",
    "recording_status_monitor",
    "streaming_status_monitor",
]
