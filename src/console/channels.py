"""Per-channel gain/pan/mute/solo state and input-device mapping.

Every editable numeric field is either :class:`Committed` (matches the
engine) or :class:`Pending` (a local drag value plus the last committed
value to fall back to).  Gain and pan are previewed locally while a
fader is dragged and committed with a single engine call on release;
mute and solo are confirmed writes that only change the cache after the
engine accepts them.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar, Union

import numpy as np

from domain.models import (
    GAIN_RANGE_DB,
    PAN_RANGE,
    EffectsDefault,
    MixerChannel,
    MixerConfiguration,
    MixerSetup,
)
from gateway.client import RemoteCallGateway
from gateway.errors import GatewayError, StateConflictError, TransportError, ValidationError

from .applications import parse_application_source

logger = logging.getLogger(__name__)

T = TypeVar("T")

DeviceCheck = Callable[[str], Any]


@dataclass(frozen=True)
class Committed(Generic[T]):
    """Value confirmed by the engine."""

    value: T

    @property
    def pending(self) -> bool:
        return False

    @property
    def committed_value(self) -> T:
        return self.value


@dataclass(frozen=True)
class Pending(Generic[T]):
    """Local, not-yet-committed value and the value to revert to."""

    local_value: T
    last_committed: T

    @property
    def value(self) -> T:
        return self.local_value

    @property
    def pending(self) -> bool:
        return True

    @property
    def committed_value(self) -> T:
        return self.last_committed


FieldState = Union[Committed[T], Pending[T]]


@dataclass
class ChannelStrip:
    """Cached state of one mixer channel within the active configuration."""

    channel_id: int
    name: str
    input_device_id: Optional[str]
    gain: FieldState[float]
    pan: FieldState[float]
    muted: bool = False
    solo: bool = False

    def to_channel(self) -> MixerChannel:
        """Return the engine representation using committed values only."""

        return MixerChannel(
            id=self.channel_id,
            name=self.name,
            input_device_id=self.input_device_id,
            gain=self.gain.committed_value,
            pan=self.pan.committed_value,
            muted=self.muted,
            solo=self.solo,
        )


class InputStreamError(TransportError):
    """Raised when a channel was re-mapped but its new input stream did not open."""

    def __init__(
        self,
        message: str,
        *,
        channel_id: int,
        device_id: str,
        command: Optional[str] = None,
    ) -> None:
        super().__init__(message, command=command)
        self.channel_id = channel_id
        self.device_id = device_id


_FIELD_COMMANDS = {
    "gain": ("update_audio_effects_default_gain", "gain"),
    "pan": ("update_audio_effects_default_pan", "pan"),
}


class ChannelStateCache:
    """Channel strips for the active configuration, kept in step with the engine."""

    def __init__(
        self,
        gateway: RemoteCallGateway,
        *,
        gain_bounds: Tuple[float, float] = GAIN_RANGE_DB,
        device_check: DeviceCheck | None = None,
    ) -> None:
        """Create an empty cache.

        ``device_check(device_id)`` must raise :class:`ValidationError` for
        a device that is not currently enumerated.  It runs before any
        engine call that routes audio to or from a hardware device.
        """

        low, high = gain_bounds
        if low >= high:
            raise ValueError("gain_bounds must be (low, high) with low < high")
        self._gateway = gateway
        self._device_check = device_check
        self._gain_bounds = (float(low), float(high))
        self._strips: Dict[int, ChannelStrip] = {}
        self._configuration_id: Optional[int] = None
        self._output_device_id: Optional[str] = None
        self._generation = 0
        self._switch_locks: Dict[int, asyncio.Lock] = {}

    @property
    def configuration_id(self) -> Optional[int]:
        return self._configuration_id

    @property
    def output_device_id(self) -> Optional[str]:
        return self._output_device_id

    @property
    def gain_bounds(self) -> Tuple[float, float]:
        return self._gain_bounds

    @property
    def channels(self) -> List[ChannelStrip]:
        return [dataclasses.replace(strip) for strip in self._strips.values()]

    def get(self, channel_id: int) -> ChannelStrip:
        return dataclasses.replace(self._require(channel_id))

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    async def load(self, configuration_id: int) -> List[ChannelStrip]:
        """Populate strips from the mixer layout and the configuration's defaults."""

        self._generation += 1
        token = self._generation
        setup, defaults = await asyncio.gather(
            self._gateway.call("get_dj_mixer_config", response_model=MixerSetup),
            self._gateway.call(
                "get_audio_effects_defaults",
                {"configurationId": configuration_id},
                response_model=List[EffectsDefault],
            ),
        )
        if token != self._generation:
            logger.debug("discarding channel load for configuration %s", configuration_id)
            return self.channels
        by_device = {record.device_id: record for record in defaults}
        strips: Dict[int, ChannelStrip] = {}
        for channel in setup.channels:
            record = by_device.get(channel.input_device_id) if channel.input_device_id else None
            source = record if record is not None else channel
            strips[channel.id] = ChannelStrip(
                channel_id=channel.id,
                name=channel.name,
                input_device_id=channel.input_device_id,
                gain=Committed(self._clamp_gain(source.gain)),
                pan=Committed(self._clamp_pan(source.pan)),
                muted=source.muted,
                solo=source.solo,
            )
        self._strips = strips
        self._configuration_id = configuration_id
        self._output_device_id = setup.master_output_device_id
        logger.debug("loaded %d channels for configuration %s", len(strips), configuration_id)
        return self.channels

    def invalidate(self) -> None:
        """Drop all strips; responses still in flight will be discarded."""

        self._generation += 1
        self._strips = {}
        self._configuration_id = None

    # ------------------------------------------------------------------
    # Confirmed writes
    # ------------------------------------------------------------------
    async def toggle_mute(self, channel_id: int) -> bool:
        return await self._toggle(channel_id, "muted", "update_audio_effects_default_mute")

    async def toggle_solo(self, channel_id: int) -> bool:
        return await self._toggle(channel_id, "solo", "update_audio_effects_default_solo")

    # ------------------------------------------------------------------
    # Drag-time gain/pan
    # ------------------------------------------------------------------
    def update_gain(self, channel_id: int, value: float) -> float:
        """Preview a gain value locally; nothing is sent until :meth:`commit_gain`."""

        return self._preview(channel_id, "gain", self._clamp_gain(value))

    def update_pan(self, channel_id: int, value: float) -> float:
        """Preview a pan value locally; nothing is sent until :meth:`commit_pan`."""

        return self._preview(channel_id, "pan", self._clamp_pan(value))

    async def commit_gain(self, channel_id: int) -> float:
        return await self._commit(channel_id, "gain")

    async def commit_pan(self, channel_id: int) -> float:
        return await self._commit(channel_id, "pan")

    def cancel_gain(self, channel_id: int) -> float:
        return self._revert(channel_id, "gain")

    def cancel_pan(self, channel_id: int) -> float:
        return self._revert(channel_id, "pan")

    # ------------------------------------------------------------------
    # Routing
    # ------------------------------------------------------------------
    async def switch_input_device(
        self,
        channel_id: int,
        old_id: Optional[str],
        new_id: Optional[str],
        is_application_source: bool = False,
    ) -> None:
        """Re-map a channel's input: persist, open the new stream, then close the old one.

        Opening before closing avoids an audible gap.  A hardware device
        missing from live enumeration is rejected with
        :class:`ValidationError` before anything is sent.  If the new
        stream fails to open the channel stays mapped to ``new_id`` and
        :class:`InputStreamError` is raised.  Failing to close the old
        stream is logged only.
        """

        lock = self._switch_locks.setdefault(channel_id, asyncio.Lock())
        async with lock:
            strip = self._require(channel_id)
            if old_id == new_id:
                return
            if new_id is not None and not is_application_source:
                self._check_device(new_id, "update_mixer_channel")
            token = self._generation
            channel = strip.to_channel().model_copy(update={"input_device_id": new_id})
            await self._gateway.call(
                "update_mixer_channel",
                {"channelId": channel_id, "channel": channel.model_dump(mode="json")},
            )
            if token == self._generation and channel_id in self._strips:
                self._strips[channel_id].input_device_id = new_id

            if new_id is not None:
                try:
                    await self._open_stream(new_id, is_application_source)
                except GatewayError as exc:
                    logger.error(
                        "channel %s mapped to %s but its input stream failed: %s",
                        channel_id,
                        new_id,
                        exc,
                    )
                    raise InputStreamError(
                        f"Channel {channel_id} is mapped to {new_id!r} without a live stream: {exc.message}",
                        channel_id=channel_id,
                        device_id=new_id,
                        command=exc.command,
                    ) from exc

            if old_id is not None:
                try:
                    await self._close_stream(old_id)
                except GatewayError as exc:
                    logger.warning("failed to close previous input stream %s: %s", old_id, exc)

    async def add_channel(self, channel: MixerChannel) -> ChannelStrip:
        await self._gateway.call("add_mixer_channel", {"channel": channel.model_dump(mode="json")})
        strip = ChannelStrip(
            channel_id=channel.id,
            name=channel.name,
            input_device_id=channel.input_device_id,
            gain=Committed(self._clamp_gain(channel.gain)),
            pan=Committed(self._clamp_pan(channel.pan)),
            muted=channel.muted,
            solo=channel.solo,
        )
        self._strips[channel.id] = strip
        return dataclasses.replace(strip)

    async def set_output_device(self, device_id: str) -> None:
        """Route the master bus to ``device_id`` once the engine has opened it."""

        self._check_device(device_id, "set_output_stream")
        await self._gateway.call("set_output_stream", {"deviceId": device_id})
        self._output_device_id = device_id

    async def teardown_streams(self, configuration: MixerConfiguration | None = None) -> None:
        """Close every channel's input stream before the session is replaced."""

        for strip in list(self._strips.values()):
            if strip.input_device_id is None:
                continue
            try:
                await self._close_stream(strip.input_device_id)
            except GatewayError as exc:
                logger.warning(
                    "failed to tear down input stream %s for channel %s: %s",
                    strip.input_device_id,
                    strip.channel_id,
                    exc,
                )

    async def restore_streams(self, configuration: MixerConfiguration | None = None) -> None:
        """Reopen every mapped input stream after an aborted session switch."""

        for strip in list(self._strips.values()):
            device_id = strip.input_device_id
            if device_id is None:
                continue
            try:
                await self._open_stream(device_id, parse_application_source(device_id) is not None)
            except GatewayError as exc:
                logger.warning(
                    "failed to reopen input stream %s for channel %s: %s",
                    device_id,
                    strip.channel_id,
                    exc,
                )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _require(self, channel_id: int) -> ChannelStrip:
        try:
            return self._strips[channel_id]
        except KeyError as exc:
            raise KeyError(f"Channel {channel_id!r} not loaded") from exc

    def _check_device(self, device_id: str, command: str) -> None:
        if self._device_check is None:
            return
        try:
            self._device_check(device_id)
        except ValidationError as exc:
            if exc.command is None:
                exc.command = command
            logger.warning("refusing to route %s: %s", device_id, exc.message)
            raise

    def _write_target(self, strip: ChannelStrip, command: str) -> Tuple[str, int]:
        if self._configuration_id is None:
            raise StateConflictError("No configuration loaded", command=command)
        if strip.input_device_id is None:
            raise StateConflictError(
                f"Channel {strip.channel_id} has no input device", command=command
            )
        return strip.input_device_id, self._configuration_id

    def _clamp_gain(self, value: float) -> float:
        return float(np.clip(value, self._gain_bounds[0], self._gain_bounds[1]))

    @staticmethod
    def _clamp_pan(value: float) -> float:
        return float(np.clip(value, PAN_RANGE[0], PAN_RANGE[1]))

    async def _toggle(self, channel_id: int, field: str, command: str) -> bool:
        strip = self._require(channel_id)
        device_id, configuration_id = self._write_target(strip, command)
        token = self._generation
        value = not getattr(strip, field)
        await self._gateway.call(
            command,
            {"deviceId": device_id, "configurationId": configuration_id, field: value},
        )
        if token != self._generation or channel_id not in self._strips:
            logger.debug("discarding %s result for stale configuration", command)
            return value
        setattr(self._strips[channel_id], field, value)
        return value

    def _preview(self, channel_id: int, field: str, value: float) -> float:
        strip = self._require(channel_id)
        current: FieldState[float] = getattr(strip, field)
        setattr(strip, field, Pending(value, current.committed_value))
        return value

    def _revert(self, channel_id: int, field: str) -> float:
        strip = self._require(channel_id)
        current: FieldState[float] = getattr(strip, field)
        setattr(strip, field, Committed(current.committed_value))
        return current.committed_value

    async def _commit(self, channel_id: int, field: str) -> float:
        strip = self._require(channel_id)
        state: FieldState[float] = getattr(strip, field)
        if not isinstance(state, Pending):
            return state.value
        if state.local_value == state.last_committed:
            setattr(strip, field, Committed(state.last_committed))
            return state.last_committed
        command, arg_key = _FIELD_COMMANDS[field]
        try:
            device_id, configuration_id = self._write_target(strip, command)
        except StateConflictError:
            setattr(strip, field, Committed(state.last_committed))
            raise
        token = self._generation
        try:
            await self._gateway.call(
                command,
                {"deviceId": device_id, "configurationId": configuration_id, arg_key: state.local_value},
            )
        except GatewayError:
            if token == self._generation:
                self._settle(channel_id, field, state, state.last_committed)
            raise
        if token == self._generation:
            self._settle(channel_id, field, state, state.local_value)
        return state.local_value

    def _settle(self, channel_id: int, field: str, state: Pending[float], committed: float) -> None:
        strip = self._strips.get(channel_id)
        if strip is None:
            return
        current = getattr(strip, field)
        if current is state:
            setattr(strip, field, Committed(committed))
        elif isinstance(current, Pending):
            # A newer drag started while the commit was in flight.
            setattr(strip, field, Pending(current.local_value, committed))

    async def _open_stream(self, device_id: str, is_application_source: bool) -> None:
        if is_application_source:
            pid = parse_application_source(device_id)
            if pid is None:
                raise ValidationError(
                    f"{device_id!r} is not an application source",
                    command="create_mixer_input_for_application",
                )
            await self._gateway.call("create_mixer_input_for_application", {"pid": pid})
        else:
            await self._gateway.call("add_input_stream", {"deviceId": device_id})

    async def _close_stream(self, device_id: str) -> None:
        pid = parse_application_source(device_id)
        if pid is not None:
            await self._gateway.call("stop_application_audio_capture", {"pid": pid})
        else:
            await self._gateway.call("remove_input_stream", {"deviceId": device_id})


class ChannelFaderGesture:
    """Drag model for one fader: preview while moving, commit once on release."""

    def __init__(self, cache: ChannelStateCache, channel_id: int, field: str = "gain") -> None:
        if field not in _FIELD_COMMANDS:
            raise ValueError(f"Unsupported fader field {field!r}")
        self._cache = cache
        self._channel_id = channel_id
        self._field = field
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def begin(self) -> float:
        """Start a drag and return the value the fader currently shows."""

        self._active = True
        state: FieldState[float] = getattr(self._cache.get(self._channel_id), self._field)
        return state.value

    def preview_to(self, value: float) -> float:
        self._ensure_active()
        if self._field == "gain":
            return self._cache.update_gain(self._channel_id, value)
        return self._cache.update_pan(self._channel_id, value)

    async def commit(self) -> float:
        self._ensure_active()
        self._active = False
        if self._field == "gain":
            return await self._cache.commit_gain(self._channel_id)
        return await self._cache.commit_pan(self._channel_id)

    def cancel(self) -> float:
        self._ensure_active()
        self._active = False
        if self._field == "gain":
            return self._cache.cancel_gain(self._channel_id)
        return self._cache.cancel_pan(self._channel_id)

    def _ensure_active(self) -> None:
        if not self._active:
            raise RuntimeError("No fader drag in progress")


__all__ = [
    "Committed",
    "Pending",
    "FieldState",
    "ChannelStrip",
    "InputStreamError",
    "ChannelStateCache",
    "ChannelFaderGesture",
    "DeviceCheck",
]
