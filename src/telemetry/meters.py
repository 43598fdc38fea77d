"""Meter value store and the pollers that keep it fed."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from domain.models import AudioMetrics, ChannelLevels, LevelPair, MasterLevels
from domain.settings import ConsoleSettings
from gateway.client import RemoteCallGateway

from .poller import Poller
from .render_filter import RENDER_THRESHOLD, RenderChangeFilter, vu_segments

logger = logging.getLogger(__name__)


def parse_channel_levels(values: Sequence[float]) -> ChannelLevels:
    """Build :class:`ChannelLevels` from ``(peak, rms)`` or ``(peakL, rmsL, peakR, rmsR)``."""

    if len(values) == 2:
        pair = LevelPair(peak=float(values[0]), rms=float(values[1]))
        return ChannelLevels(left=pair, right=pair.model_copy())
    if len(values) >= 4:
        return ChannelLevels(
            left=LevelPair(peak=float(values[0]), rms=float(values[1])),
            right=LevelPair(peak=float(values[2]), rms=float(values[3])),
        )
    raise ValueError(f"Expected 2 or 4 level values, got {len(values)}")


def parse_master_levels(values: Sequence[float]) -> MasterLevels:
    if len(values) != 4:
        raise ValueError(f"Expected 4 master level values, got {len(values)}")
    left_peak, left_rms, right_peak, right_rms = (float(v) for v in values)
    return MasterLevels(
        left=LevelPair(peak=left_peak, rms=left_rms),
        right=LevelPair(peak=right_peak, rms=right_rms),
    )


class MixerLevelStore:
    """Latest exact meter values plus throttled VU presentations."""

    def __init__(self, *, render_threshold: float = RENDER_THRESHOLD, segments: int = 20) -> None:
        self._render_threshold = float(render_threshold)
        self._segments = segments
        self._channels: Dict[int, ChannelLevels] = {}
        self._master = MasterLevels()
        self._metrics: Optional[AudioMetrics] = None
        self._filters: Dict[int, RenderChangeFilter[List[str]]] = {}

    @property
    def master(self) -> MasterLevels:
        return self._master.model_copy(deep=True)

    @property
    def metrics(self) -> Optional[AudioMetrics]:
        return None if self._metrics is None else self._metrics.model_copy()

    @property
    def channel_ids(self) -> List[int]:
        return sorted(self._channels)

    def channel_levels(self, channel_id: int) -> Optional[ChannelLevels]:
        levels = self._channels.get(channel_id)
        return None if levels is None else levels.model_copy(deep=True)

    def apply_channel_levels(self, raw: Mapping[Any, Sequence[float]]) -> bool:
        """Store every channel reading that differs from the cached one."""

        changed = False
        for key, values in raw.items():
            try:
                channel_id = int(key)
                levels = parse_channel_levels(values)
            except (TypeError, ValueError) as exc:
                logger.warning("ignoring malformed levels for channel %r: %s", key, exc)
                continue
            if self._channels.get(channel_id) != levels:
                self._channels[channel_id] = levels
                changed = True
        return changed

    def apply_master_levels(self, raw: Sequence[float]) -> bool:
        levels = parse_master_levels(raw)
        if levels == self._master:
            return False
        self._master = levels
        return True

    def apply_metrics(self, metrics: AudioMetrics) -> bool:
        if metrics == self._metrics:
            return False
        self._metrics = metrics
        return True

    def vu_view(self, channel_id: int) -> List[str]:
        """Return lit VU segments for the channel's mono peak."""

        levels = self._channels.get(channel_id)
        mono = levels.mono if levels is not None else LevelPair()
        meter = self._filters.get(channel_id)
        if meter is None:
            meter = RenderChangeFilter(self._render_segments, threshold=self._render_threshold)
            self._filters[channel_id] = meter
        return list(meter.present((mono.peak, mono.rms)))

    def render_count(self, channel_id: int) -> int:
        meter = self._filters.get(channel_id)
        return 0 if meter is None else meter.render_count

    def clear_channels(self) -> None:
        """Forget per-channel readings, e.g. after the configuration changed."""

        self._channels = {}
        self._filters = {}

    def _render_segments(self, sample: Any) -> List[str]:
        return vu_segments(float(sample[0]), self._segments)


class MixerTelemetryService:
    """Levels (10 Hz) and engine metrics (1 Hz) pollers feeding a :class:`MixerLevelStore`."""

    def __init__(
        self,
        gateway: RemoteCallGateway,
        store: MixerLevelStore,
        *,
        settings: ConsoleSettings | None = None,
        ready: Callable[[], bool] | None = None,
    ) -> None:
        settings = settings or ConsoleSettings()
        self._gateway = gateway
        self._store = store
        self.levels: Poller[Tuple[Dict[int, List[float]], List[float]]] = Poller(
            "mixer-levels",
            self._fetch_levels,
            self._apply_levels,
            interval=settings.level_poll_interval,
            ready=ready,
        )
        self.metrics: Poller[AudioMetrics] = Poller(
            "mixer-metrics",
            self._fetch_metrics,
            store.apply_metrics,
            interval=settings.metrics_poll_interval,
            ready=ready,
        )

    @property
    def store(self) -> MixerLevelStore:
        return self._store

    def start(self) -> None:
        self.levels.start()
        self.metrics.start()

    def set_ready(self, ready: bool) -> None:
        self.levels.set_ready(ready)
        self.metrics.set_ready(ready)

    def stop(self) -> None:
        self.levels.stop()
        self.metrics.stop()

    async def _fetch_levels(self) -> Tuple[Dict[int, List[float]], List[float]]:
        channel_levels, master_levels = await asyncio.gather(
            self._gateway.call("get_channel_levels", response_model=Dict[int, List[float]]),
            self._gateway.call("get_master_levels", response_model=List[float]),
        )
        return channel_levels, master_levels

    def _apply_levels(self, payload: Tuple[Dict[int, List[float]], List[float]]) -> None:
        channel_levels, master_levels = payload
        self._store.apply_channel_levels(channel_levels)
        self._store.apply_master_levels(master_levels)

    async def _fetch_metrics(self) -> AudioMetrics:
        return await self._gateway.call("get_mixer_metrics", response_model=AudioMetrics)


__all__ = [
    "MixerLevelStore",
    "MixerTelemetryService",
    "parse_channel_levels",
    "parse_master_levels",
]
