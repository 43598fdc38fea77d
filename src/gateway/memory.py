"""Dictionary-backed engine implementing the full command surface in-process.

:class:`InMemoryEngine` plays the role the native audio engine plays in
production: it owns configurations, configured devices, effect records,
live input streams and metering values, and answers every command the
control plane issues with JSON-compatible payloads.  It exists for tests
and offline demos, so it also exposes hooks to inject failures, add
latency, hold a command in flight and simulate device hot-plug.
"""
from __future__ import annotations

import asyncio
import itertools
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from pydantic import BaseModel
from pydantic import ValidationError as ModelValidationError

from domain.models import (
    APPLICATION_SOURCE_PREFIX,
    DESCRIPTION_MAX_LENGTH,
    AudioDeviceInfo,
    AudioMetrics,
    ChannelEffects,
    CompleteConfiguration,
    ConfigurationType,
    ConfiguredDevice,
    EffectsCustom,
    EffectsDefault,
    EffectType,
    MixerChannel,
    MixerConfiguration,
    MixerSetup,
    ProcessInfo,
    RecordingStatus,
    StreamingStatus,
)

from .client import EngineTransport
from .errors import StateConflictError, TransportError, ValidationError


def _default_channels() -> List[MixerChannel]:
    return [
        MixerChannel(id=1, name="Deck A"),
        MixerChannel(id=2, name="Deck B"),
    ]


def _dump(model: BaseModel) -> Dict[str, Any]:
    return model.model_dump(mode="json")


def _require(args: Mapping[str, Any], key: str) -> Any:
    if key not in args or args[key] is None:
        raise ValidationError(f"missing argument {key!r}")
    return args[key]


class InMemoryEngine(EngineTransport):
    """In-process engine suitable for tests or mocked desktop sessions."""

    def __init__(
        self,
        *,
        devices: Iterable[AudioDeviceInfo] = (),
        channels: Iterable[MixerChannel] | None = None,
        applications: Iterable[ProcessInfo] = (),
        permissions_granted: bool = False,
    ) -> None:
        self._devices: Dict[str, AudioDeviceInfo] = {
            device.id: device.model_copy(deep=True) for device in devices
        }
        self._configurations: Dict[int, MixerConfiguration] = {}
        self._configured_devices: Dict[int, ConfiguredDevice] = {}
        self._effects_default: Dict[Tuple[str, int], EffectsDefault] = {}
        self._effects_custom: Dict[Tuple[str, int, EffectType], EffectsCustom] = {}
        self._channel_effects: Dict[int, ChannelEffects] = {}
        self._setup = MixerSetup(
            channels=list(channels) if channels is not None else _default_channels()
        )
        self._mixer_created = False
        self._input_streams: List[str] = []
        self._output_device: Optional[str] = None
        self._applications: Dict[int, ProcessInfo] = {app.pid: app for app in applications}
        self._permissions_granted = permissions_granted
        self._captures: Set[int] = set()
        self._channel_levels: Dict[int, List[float]] = {}
        self._master_levels: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)
        self._metrics = AudioMetrics()
        self._streaming = StreamingStatus()
        self._recording = RecordingStatus()
        self._ids = itertools.count(1)
        self._failures: Dict[str, List[BaseException]] = {}
        self._latency: Dict[str, float] = {}
        self._holds: Dict[str, asyncio.Event] = {}
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    # ------------------------------------------------------------------
    # Transport entry point
    # ------------------------------------------------------------------
    async def invoke(self, command: str, args: Mapping[str, Any]) -> Any:
        payload = dict(args)
        self.calls.append((command, payload))
        gate = self._holds.get(command)
        if gate is not None:
            await gate.wait()
        latency = self._latency.get(command, 0.0)
        if latency > 0.0:
            await asyncio.sleep(latency)
        queued = self._failures.get(command)
        if queued:
            raise queued.pop(0)
        handler: Optional[Callable[[Dict[str, Any]], Any]] = getattr(self, f"_cmd_{command}", None)
        if handler is None:
            raise ValidationError(f"unknown command {command!r}", command=command)
        return handler(payload)

    # ------------------------------------------------------------------
    # Test hooks
    # ------------------------------------------------------------------
    def fail_next(self, command: str, error: BaseException | None = None) -> None:
        """Make the next ``command`` raise ``error`` (a transport error by default)."""

        failure = error if error is not None else TransportError("engine unavailable", command=command)
        self._failures.setdefault(command, []).append(failure)

    def set_latency(self, command: str, seconds: float) -> None:
        self._latency[command] = max(0.0, float(seconds))

    def hold(self, command: str) -> asyncio.Event:
        """Block every ``command`` until the returned event is set."""

        gate = asyncio.Event()
        self._holds[command] = gate
        return gate

    def release(self, command: str) -> None:
        gate = self._holds.pop(command, None)
        if gate is not None:
            gate.set()

    def call_count(self, command: str) -> int:
        return sum(1 for name, _ in self.calls if name == command)

    def set_devices(self, devices: Iterable[AudioDeviceInfo]) -> None:
        """Replace the live device list, simulating a hot-plug event."""

        self._devices = {device.id: device.model_copy(deep=True) for device in devices}

    def set_channel_levels(self, levels: Mapping[int, Sequence[float]]) -> None:
        self._channel_levels = {int(key): [float(v) for v in value] for key, value in levels.items()}

    def set_master_levels(self, levels: Sequence[float]) -> None:
        left_peak, left_rms, right_peak, right_rms = (float(v) for v in levels)
        self._master_levels = (left_peak, left_rms, right_peak, right_rms)

    def set_metrics(self, metrics: AudioMetrics) -> None:
        self._metrics = metrics.model_copy(deep=True)

    def set_streaming_status(self, status: StreamingStatus) -> None:
        self._streaming = status.model_copy(deep=True)

    def set_recording_status(self, status: RecordingStatus) -> None:
        self._recording = status.model_copy(deep=True)

    def grant_permissions(self, granted: bool = True) -> None:
        self._permissions_granted = granted

    def add_reusable_configuration(
        self,
        name: str,
        *,
        description: Optional[str] = None,
        device_ids: Sequence[str] = (),
        is_default: bool = False,
    ) -> MixerConfiguration:
        """Seed a reusable configuration with one input device per channel slot."""

        configuration = MixerConfiguration(
            id=next(self._ids),
            name=name,
            description=description,
            configuration_type=ConfigurationType.REUSABLE,
            is_default=is_default,
        )
        self._configurations[configuration.id] = configuration
        for channel_number, device_id in enumerate(device_ids):
            known = self._devices.get(device_id)
            record = ConfiguredDevice(
                id=next(self._ids),
                device_identifier=device_id,
                device_name=known.name if known else None,
                channel_number=channel_number,
                is_input=True,
                configuration_id=configuration.id,
            )
            self._configured_devices[record.id] = record
            self._effects_default[(device_id, configuration.id)] = EffectsDefault(
                device_id=device_id, configuration_id=configuration.id
            )
        return configuration.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Inspection helpers
    # ------------------------------------------------------------------
    @property
    def live_input_streams(self) -> List[str]:
        return list(self._input_streams)

    @property
    def output_device(self) -> Optional[str]:
        return self._output_device

    @property
    def mixer_created(self) -> bool:
        return self._mixer_created

    @property
    def mixer_setup(self) -> MixerSetup:
        return self._setup.model_copy(deep=True)

    def configuration(self, configuration_id: int) -> MixerConfiguration:
        return self._configurations[configuration_id].model_copy(deep=True)

    def sessions(self) -> List[MixerConfiguration]:
        return [c.model_copy(deep=True) for c in self._configurations.values() if c.is_session]

    def active_sessions(self) -> List[MixerConfiguration]:
        return [c for c in self.sessions() if c.session_active]

    def effects_default(self, device_id: str, configuration_id: int) -> EffectsDefault:
        return self._effects_default[(device_id, configuration_id)].model_copy(deep=True)

    def configured_devices(self, configuration_id: int) -> List[ConfiguredDevice]:
        return [
            record.model_copy(deep=True)
            for record in self._configured_devices.values()
            if record.configuration_id == configuration_id
        ]

    # ------------------------------------------------------------------
    # Configuration commands
    # ------------------------------------------------------------------
    def _cmd_get_reusable_configurations(self, args: Dict[str, Any]) -> List[Dict[str, Any]]:
        return [
            _dump(configuration)
            for configuration in sorted(self._configurations.values(), key=lambda c: c.id)
            if not configuration.is_session
        ]

    def _cmd_get_active_session_configuration(self, args: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        active = self._active_session()
        if active is None:
            return None
        return _dump(self._complete(active.id))

    def _cmd_create_session_from_reusable(self, args: Dict[str, Any]) -> Dict[str, Any]:
        reusable_id = int(_require(args, "reusableId"))
        source = self._configurations.get(reusable_id)
        if source is None or source.is_session:
            raise ValidationError(f"Reusable configuration {reusable_id} not found")
        for identifier, configuration in self._configurations.items():
            if configuration.session_active:
                self._configurations[identifier] = configuration.model_copy(update={"session_active": False})
        session = MixerConfiguration(
            id=next(self._ids),
            name=args.get("sessionName") or f"{source.name} (Session)",
            description=source.description,
            configuration_type=ConfigurationType.SESSION,
            session_active=True,
            reusable_configuration_id=source.id,
        )
        self._configurations[session.id] = session
        self._clone_related(source.id, session.id)
        return _dump(self._complete(session.id))

    def _cmd_save_session_as_new_reusable(self, args: Dict[str, Any]) -> Dict[str, Any]:
        name = str(args.get("name") or "").strip()
        if not name:
            raise ValidationError("Configuration name must not be empty")
        description = args.get("description")
        if description is not None and len(description) > DESCRIPTION_MAX_LENGTH:
            raise ValidationError("Configuration description is too long")
        session = self._active_session()
        if session is None:
            raise StateConflictError("No active session found")
        reusable = MixerConfiguration(
            id=next(self._ids),
            name=name,
            description=description,
            configuration_type=ConfigurationType.REUSABLE,
        )
        self._configurations[reusable.id] = reusable
        self._clone_related(session.id, reusable.id)
        self._configurations[session.id] = session.model_copy(
            update={"reusable_configuration_id": reusable.id}
        )
        return _dump(reusable)

    def _cmd_save_session_to_reusable(self, args: Dict[str, Any]) -> Dict[str, Any]:
        session = self._active_session()
        if session is None:
            raise StateConflictError("No active session found")
        if session.reusable_configuration_id is None:
            raise StateConflictError("Active session is not linked to a reusable configuration")
        target = self._configurations.get(session.reusable_configuration_id)
        if target is None:
            raise StateConflictError(
                f"Linked reusable configuration {session.reusable_configuration_id} no longer exists"
            )
        if session.description is not None:
            target = target.model_copy(update={"description": session.description})
            self._configurations[target.id] = target
        self._drop_related(target.id)
        self._clone_related(session.id, target.id)
        return _dump(target)

    # ------------------------------------------------------------------
    # Mixer commands
    # ------------------------------------------------------------------
    def _cmd_get_dj_mixer_config(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return _dump(self._setup)

    def _cmd_create_mixer(self, args: Dict[str, Any]) -> None:
        self._setup = self._parse(MixerSetup, _require(args, "config"))
        self._mixer_created = True

    def _cmd_add_mixer_channel(self, args: Dict[str, Any]) -> None:
        channel = self._parse(MixerChannel, _require(args, "channel"))
        if any(existing.id == channel.id for existing in self._setup.channels):
            raise ValidationError(f"Channel {channel.id} already exists")
        self._setup.channels.append(channel)

    def _cmd_update_mixer_channel(self, args: Dict[str, Any]) -> None:
        channel_id = int(_require(args, "channelId"))
        channel = self._parse(MixerChannel, _require(args, "channel"))
        for index, existing in enumerate(self._setup.channels):
            if existing.id == channel_id:
                self._setup.channels[index] = channel
                return
        raise ValidationError(f"Channel {channel_id} not found")

    def _cmd_get_mixer_metrics(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return _dump(self._metrics)

    def _cmd_get_channel_levels(self, args: Dict[str, Any]) -> Dict[str, List[float]]:
        return {str(channel_id): list(values) for channel_id, values in self._channel_levels.items()}

    def _cmd_get_master_levels(self, args: Dict[str, Any]) -> List[float]:
        return list(self._master_levels)

    def _cmd_add_input_stream(self, args: Dict[str, Any]) -> None:
        device_id = str(_require(args, "deviceId"))
        device = self._devices.get(device_id)
        if device is None or not device.is_input:
            raise ValidationError(f"Unknown input device {device_id!r}")
        if device_id not in self._input_streams:
            self._input_streams.append(device_id)

    def _cmd_remove_input_stream(self, args: Dict[str, Any]) -> None:
        device_id = str(_require(args, "deviceId"))
        if device_id not in self._input_streams:
            raise ValidationError(f"No input stream open for {device_id!r}")
        self._input_streams.remove(device_id)

    def _cmd_set_output_stream(self, args: Dict[str, Any]) -> None:
        device_id = str(_require(args, "deviceId"))
        device = self._devices.get(device_id)
        if device is None or not device.is_output:
            raise ValidationError(f"Unknown output device {device_id!r}")
        self._output_device = device_id

    def _cmd_enumerate_audio_devices(self, args: Dict[str, Any]) -> List[Dict[str, Any]]:
        return [_dump(device) for device in self._devices.values()]

    def _cmd_refresh_audio_devices(self, args: Dict[str, Any]) -> List[Dict[str, Any]]:
        return self._cmd_enumerate_audio_devices(args)

    # ------------------------------------------------------------------
    # Effects commands
    # ------------------------------------------------------------------
    def _cmd_get_audio_effects_defaults(self, args: Dict[str, Any]) -> List[Dict[str, Any]]:
        configuration_id = self._known_configuration(args)
        return [
            _dump(record)
            for (_, owner), record in self._effects_default.items()
            if owner == configuration_id
        ]

    def _cmd_update_audio_effects_default_gain(self, args: Dict[str, Any]) -> None:
        self._update_default(args, "gain", float(_require(args, "gain")))

    def _cmd_update_audio_effects_default_pan(self, args: Dict[str, Any]) -> None:
        self._update_default(args, "pan", float(_require(args, "pan")))

    def _cmd_update_audio_effects_default_mute(self, args: Dict[str, Any]) -> None:
        self._update_default(args, "muted", bool(_require(args, "muted")))

    def _cmd_update_audio_effects_default_solo(self, args: Dict[str, Any]) -> None:
        self._update_default(args, "solo", bool(_require(args, "solo")))

    def _cmd_get_channel_effects(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return _dump(self._effects_for(args))

    def _cmd_add_channel_effect(self, args: Dict[str, Any]) -> None:
        effects = self._effects_for(args)
        effect_type = self._effect_type(args)
        if effect_type in effects.active:
            raise StateConflictError(f"{effect_type.value} already active on channel {effects.channel_id}")
        effects.active.append(effect_type)

    def _cmd_remove_channel_effect(self, args: Dict[str, Any]) -> None:
        effects = self._effects_for(args)
        effect_type = self._effect_type(args)
        if effect_type not in effects.active:
            raise ValidationError(f"{effect_type.value} is not active on channel {effects.channel_id}")
        effects.active.remove(effect_type)

    def _cmd_update_channel_eq(self, args: Dict[str, Any]) -> None:
        effects = self._effects_for(args)
        updates = self._collect(
            args,
            {"eqLowGain": "low_gain", "eqMidGain": "mid_gain", "eqHighGain": "high_gain", "enabled": "enabled"},
        )
        effects.equalizer = self._parse(type(effects.equalizer), {**effects.equalizer.model_dump(), **updates})

    def _cmd_update_channel_compressor(self, args: Dict[str, Any]) -> None:
        effects = self._effects_for(args)
        updates = self._collect(
            args,
            {
                "threshold": "threshold",
                "ratio": "ratio",
                "attackMs": "attack_ms",
                "releaseMs": "release_ms",
                "enabled": "enabled",
            },
        )
        effects.compressor = self._parse(type(effects.compressor), {**effects.compressor.model_dump(), **updates})

    def _cmd_update_channel_limiter(self, args: Dict[str, Any]) -> None:
        effects = self._effects_for(args)
        updates = self._collect(args, {"thresholdDb": "threshold", "enabled": "enabled"})
        effects.limiter = self._parse(type(effects.limiter), {**effects.limiter.model_dump(), **updates})

    # ------------------------------------------------------------------
    # Application audio commands
    # ------------------------------------------------------------------
    def _cmd_get_known_audio_applications(self, args: Dict[str, Any]) -> List[Dict[str, Any]]:
        return [_dump(app) for app in sorted(self._applications.values(), key=lambda a: a.pid)]

    def _cmd_request_audio_capture_permissions(self, args: Dict[str, Any]) -> str:
        if self._permissions_granted:
            return "Audio capture permissions already granted"
        return "Please grant audio capture access in System Settings"

    def _cmd_start_application_audio_capture(self, args: Dict[str, Any]) -> str:
        pid = self._known_pid(args)
        self._captures.add(pid)
        return f"Capturing audio from {self._applications[pid].name}"

    def _cmd_stop_application_audio_capture(self, args: Dict[str, Any]) -> str:
        pid = int(_require(args, "pid"))
        if pid not in self._captures:
            raise ValidationError(f"No active capture for PID {pid}")
        self._captures.discard(pid)
        source_id = f"{APPLICATION_SOURCE_PREFIX}{pid}"
        if source_id in self._input_streams:
            self._input_streams.remove(source_id)
        return f"Stopped capture for PID {pid}"

    def _cmd_create_mixer_input_for_application(self, args: Dict[str, Any]) -> str:
        pid = self._known_pid(args)
        self._captures.add(pid)
        source_id = f"{APPLICATION_SOURCE_PREFIX}{pid}"
        if source_id not in self._input_streams:
            self._input_streams.append(source_id)
        return source_id

    def _cmd_get_active_audio_captures(self, args: Dict[str, Any]) -> List[Dict[str, Any]]:
        return [_dump(self._applications[pid]) for pid in sorted(self._captures)]

    def _cmd_stop_all_audio_captures(self, args: Dict[str, Any]) -> str:
        self._captures.clear()
        self._input_streams = [
            stream for stream in self._input_streams if not stream.startswith(APPLICATION_SOURCE_PREFIX)
        ]
        return "Stopped all captures"

    # ------------------------------------------------------------------
    # Adjacent status commands
    # ------------------------------------------------------------------
    def _cmd_get_icecast_streaming_status(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return _dump(self._streaming)

    def _cmd_get_recording_status(self, args: Dict[str, Any]) -> Dict[str, Any]:
        return _dump(self._recording)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _active_session(self) -> Optional[MixerConfiguration]:
        for configuration in self._configurations.values():
            if configuration.is_active_session:
                return configuration
        return None

    def _complete(self, configuration_id: int) -> CompleteConfiguration:
        return CompleteConfiguration(
            configuration=self._configurations[configuration_id],
            configured_devices=[
                record for record in self._configured_devices.values()
                if record.configuration_id == configuration_id
            ],
            audio_effects_default=[
                record for (_, owner), record in self._effects_default.items()
                if owner == configuration_id
            ],
            audio_effects_custom=[
                record for (_, owner, _), record in self._effects_custom.items()
                if owner == configuration_id
            ],
        )

    def _clone_related(self, source_id: int, target_id: int) -> None:
        for record in list(self._configured_devices.values()):
            if record.configuration_id == source_id:
                clone = record.model_copy(update={"id": next(self._ids), "configuration_id": target_id})
                self._configured_devices[clone.id] = clone
        for (device_id, owner), record in list(self._effects_default.items()):
            if owner == source_id:
                self._effects_default[(device_id, target_id)] = record.model_copy(
                    update={"configuration_id": target_id}
                )
        for (device_id, owner, effect_type), record in list(self._effects_custom.items()):
            if owner == source_id:
                self._effects_custom[(device_id, target_id, effect_type)] = record.model_copy(
                    update={"configuration_id": target_id}
                )

    def _drop_related(self, configuration_id: int) -> None:
        self._configured_devices = {
            key: record for key, record in self._configured_devices.items()
            if record.configuration_id != configuration_id
        }
        self._effects_default = {
            key: record for key, record in self._effects_default.items() if key[1] != configuration_id
        }
        self._effects_custom = {
            key: record for key, record in self._effects_custom.items() if key[1] != configuration_id
        }

    def _known_configuration(self, args: Mapping[str, Any]) -> int:
        configuration_id = int(_require(args, "configurationId"))
        if configuration_id not in self._configurations:
            raise ValidationError(f"Configuration {configuration_id} not found")
        return configuration_id

    def _update_default(self, args: Mapping[str, Any], field: str, value: Any) -> None:
        device_id = str(_require(args, "deviceId"))
        configuration_id = self._known_configuration(args)
        key = (device_id, configuration_id)
        current = self._effects_default.get(key) or EffectsDefault(
            device_id=device_id, configuration_id=configuration_id
        )
        self._effects_default[key] = self._parse(EffectsDefault, {**current.model_dump(), field: value})

    def _effects_for(self, args: Mapping[str, Any]) -> ChannelEffects:
        channel_id = int(_require(args, "channelId"))
        if not any(channel.id == channel_id for channel in self._setup.channels):
            raise ValidationError(f"Channel {channel_id} not found")
        return self._channel_effects.setdefault(channel_id, ChannelEffects(channel_id=channel_id))

    def _effect_type(self, args: Mapping[str, Any]) -> EffectType:
        raw = _require(args, "effectType")
        try:
            return EffectType(raw)
        except ValueError as exc:
            raise ValidationError(f"Unknown effect type {raw!r}") from exc

    def _known_pid(self, args: Mapping[str, Any]) -> int:
        pid = int(_require(args, "pid"))
        if pid not in self._applications:
            raise ValidationError(f"Unknown application PID {pid}")
        if not self._permissions_granted:
            raise StateConflictError("Audio capture permissions have not been granted")
        return pid

    @staticmethod
    def _collect(args: Mapping[str, Any], mapping: Mapping[str, str]) -> Dict[str, Any]:
        return {field: args[key] for key, field in mapping.items() if args.get(key) is not None}

    @staticmethod
    def _parse(model: type, payload: Any) -> Any:
        try:
            return model.model_validate(payload)
        except ModelValidationError as exc:
            raise ValidationError(str(exc)) from exc


__all__ = ["InMemoryEngine"]
