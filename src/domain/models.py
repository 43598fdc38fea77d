"""Pydantic-powered domain models for the mixing console control plane.

These models describe every payload that crosses the engine boundary:
mixer configurations (reusable presets and the single active session),
configured devices, per-device effect defaults, per-channel effect
parameters, live device enumeration, and the transient metering samples
consumed by the telemetry pollers.  Field names follow the engine's
snake_case wire format so responses validate without aliasing.
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, model_validator

# ----------------------------------------------------------------------
# Documented parameter ranges
# ----------------------------------------------------------------------
GAIN_RANGE_DB: Tuple[float, float] = (-50.0, 20.0)
PAN_RANGE: Tuple[float, float] = (-1.0, 1.0)
EQ_GAIN_RANGE_DB: Tuple[float, float] = (-12.0, 12.0)
COMPRESSOR_THRESHOLD_RANGE_DB: Tuple[float, float] = (-40.0, 0.0)
COMPRESSOR_RATIO_RANGE: Tuple[float, float] = (1.0, 10.0)
COMPRESSOR_ATTACK_RANGE_MS: Tuple[float, float] = (0.1, 100.0)
COMPRESSOR_RELEASE_RANGE_MS: Tuple[float, float] = (10.0, 1000.0)
LIMITER_THRESHOLD_RANGE_DB: Tuple[float, float] = (-12.0, 0.0)
DESCRIPTION_MAX_LENGTH = 500
APPLICATION_SOURCE_PREFIX = "app-"


class ConfigurationType(str, Enum):
    """Distinguishes persisted presets from the ephemeral working copy."""

    REUSABLE = "reusable"
    SESSION = "session"


class EffectType(str, Enum):
    """Custom effect slots that may be attached to a channel."""

    EQUALIZER = "equalizer"
    COMPRESSOR = "compressor"
    LIMITER = "limiter"


class MixerConfiguration(BaseModel):
    """Named mixer preset or session working copy."""

    id: int
    name: str
    description: Optional[str] = Field(None, max_length=DESCRIPTION_MAX_LENGTH)
    configuration_type: ConfigurationType = ConfigurationType.REUSABLE
    session_active: bool = False
    reusable_configuration_id: Optional[int] = Field(
        None, description="Reusable preset a session was cloned from"
    )
    is_default: bool = False

    @model_validator(mode="after")
    def validate_session_flags(self) -> MixerConfiguration:  # type: ignore[override]
        if self.session_active and self.configuration_type is not ConfigurationType.SESSION:
            raise ValueError("Only session configurations can be active")
        return self

    @property
    def is_session(self) -> bool:
        return self.configuration_type is ConfigurationType.SESSION

    @property
    def is_active_session(self) -> bool:
        """Return ``True`` when this record is the live working session."""

        return self.is_session and self.session_active


class ConfiguredDevice(BaseModel):
    """Association between a channel slot and an engine-assigned device id."""

    id: int
    device_identifier: str
    device_name: Optional[str] = None
    channel_number: int = Field(0, ge=0)
    is_input: bool = True
    configuration_id: int


class EffectsDefault(BaseModel):
    """Per-device gain/pan/mute/solo state for a configuration."""

    device_id: str
    configuration_id: int
    gain: float = Field(0.0, description="Fader level in dB")
    pan: float = Field(0.0, ge=PAN_RANGE[0], le=PAN_RANGE[1])
    muted: bool = False
    solo: bool = False


class EqualizerSettings(BaseModel):
    """Three-band equalizer gains in dB."""

    low_gain: float = Field(0.0, ge=EQ_GAIN_RANGE_DB[0], le=EQ_GAIN_RANGE_DB[1])
    mid_gain: float = Field(0.0, ge=EQ_GAIN_RANGE_DB[0], le=EQ_GAIN_RANGE_DB[1])
    high_gain: float = Field(0.0, ge=EQ_GAIN_RANGE_DB[0], le=EQ_GAIN_RANGE_DB[1])
    enabled: bool = True


class CompressorSettings(BaseModel):
    """Dynamics compressor parameters."""

    threshold: float = Field(
        -12.0, ge=COMPRESSOR_THRESHOLD_RANGE_DB[0], le=COMPRESSOR_THRESHOLD_RANGE_DB[1]
    )
    ratio: float = Field(4.0, ge=COMPRESSOR_RATIO_RANGE[0], le=COMPRESSOR_RATIO_RANGE[1])
    attack_ms: float = Field(
        5.0, ge=COMPRESSOR_ATTACK_RANGE_MS[0], le=COMPRESSOR_ATTACK_RANGE_MS[1]
    )
    release_ms: float = Field(
        100.0, ge=COMPRESSOR_RELEASE_RANGE_MS[0], le=COMPRESSOR_RELEASE_RANGE_MS[1]
    )
    enabled: bool = False


class LimiterSettings(BaseModel):
    """Brick-wall limiter ceiling."""

    threshold: float = Field(
        -0.1, ge=LIMITER_THRESHOLD_RANGE_DB[0], le=LIMITER_THRESHOLD_RANGE_DB[1]
    )
    enabled: bool = False


class EffectsCustom(BaseModel):
    """Stored parameters for one custom effect slot of a device."""

    device_id: str
    configuration_id: int
    effect_type: EffectType
    parameters: Dict[str, float] = Field(default_factory=dict)


class ChannelEffects(BaseModel):
    """Active effect membership and parameters for a mixer channel."""

    channel_id: int
    active: List[EffectType] = Field(default_factory=list)
    equalizer: EqualizerSettings = Field(default_factory=EqualizerSettings)
    compressor: CompressorSettings = Field(default_factory=CompressorSettings)
    limiter: LimiterSettings = Field(default_factory=LimiterSettings)

    @model_validator(mode="after")
    def validate_unique_active(self) -> ChannelEffects:  # type: ignore[override]
        if len(set(self.active)) != len(self.active):
            raise ValueError("Effect types may only appear once in `active`")
        return self

    def is_active(self, effect_type: EffectType) -> bool:
        return effect_type in self.active


class CompleteConfiguration(BaseModel):
    """Configuration bundled with its devices and effect records."""

    configuration: MixerConfiguration
    configured_devices: List[ConfiguredDevice] = Field(default_factory=list)
    audio_effects_default: List[EffectsDefault] = Field(default_factory=list)
    audio_effects_custom: List[EffectsCustom] = Field(default_factory=list)


class MixerChannel(BaseModel):
    """Engine-side mixer channel strip."""

    id: int
    name: str
    input_device_id: Optional[str] = None
    gain: float = 0.0
    pan: float = Field(0.0, ge=PAN_RANGE[0], le=PAN_RANGE[1])
    muted: bool = False
    solo: bool = False


class MixerSetup(BaseModel):
    """Engine mixer layout returned by ``get_dj_mixer_config``."""

    channels: List[MixerChannel] = Field(default_factory=list)
    sample_rate: int = Field(48_000, gt=0)
    buffer_size: int = Field(512, gt=0)
    master_gain: float = 0.0
    master_output_device_id: Optional[str] = None


class AudioDeviceInfo(BaseModel):
    """Live hardware or virtual device reported by the engine."""

    id: str
    name: str
    is_input: bool = False
    is_output: bool = False
    is_default: bool = False
    supported_sample_rates: List[int] = Field(default_factory=list)
    supported_channels: List[int] = Field(default_factory=list)
    host_api: str = ""


class ProcessInfo(BaseModel):
    """Running application that can be captured as an audio source."""

    pid: int
    name: str
    bundle_id: Optional[str] = None
    icon_path: Optional[str] = None
    is_playing_audio: bool = False


# ----------------------------------------------------------------------
# Telemetry
# ----------------------------------------------------------------------
class LevelPair(BaseModel):
    """Linear peak/RMS reading for one side of a signal."""

    peak: float = 0.0
    rms: float = 0.0


class ChannelLevels(BaseModel):
    """Stereo meter reading for a channel strip."""

    left: LevelPair = Field(default_factory=LevelPair)
    right: LevelPair = Field(default_factory=LevelPair)

    @property
    def mono(self) -> LevelPair:
        """Collapse to a single reading: loudest peak, averaged RMS."""

        return LevelPair(
            peak=max(self.left.peak, self.right.peak),
            rms=(self.left.rms + self.right.rms) / 2.0,
        )


class MasterLevels(BaseModel):
    """Stereo meter reading for the master bus."""

    left: LevelPair = Field(default_factory=LevelPair)
    right: LevelPair = Field(default_factory=LevelPair)


class AudioMetrics(BaseModel):
    """Engine health counters surfaced on the performance panel."""

    cpu_usage: float = 0.0
    buffer_underruns: int = 0
    buffer_overruns: int = 0
    latency_ms: float = 0.0
    sample_rate: int = 48_000
    active_channels: int = 0


class StreamingStatus(BaseModel):
    """Snapshot of the Icecast streaming subsystem."""

    is_connected: bool = False
    is_streaming: bool = False
    current_listeners: Optional[int] = None
    bitrate_kbps: Optional[int] = None
    uptime_seconds: float = 0.0
    error: Optional[str] = None


class RecordingStatus(BaseModel):
    """Snapshot of the recording subsystem."""

    is_recording: bool = False
    current_file: Optional[str] = None
    duration_seconds: float = 0.0
    file_size_bytes: int = 0


__all__ = [
    "GAIN_RANGE_DB",
    "PAN_RANGE",
    "EQ_GAIN_RANGE_DB",
    "COMPRESSOR_THRESHOLD_RANGE_DB",
    "COMPRESSOR_RATIO_RANGE",
    "COMPRESSOR_ATTACK_RANGE_MS",
    "COMPRESSOR_RELEASE_RANGE_MS",
    "LIMITER_THRESHOLD_RANGE_DB",
    "DESCRIPTION_MAX_LENGTH",
    "APPLICATION_SOURCE_PREFIX",
    "ConfigurationType",
    "EffectType",
    "MixerConfiguration",
    "ConfiguredDevice",
    "EffectsDefault",
    "EqualizerSettings",
    "CompressorSettings",
    "LimiterSettings",
    "EffectsCustom",
    "ChannelEffects",
    "CompleteConfiguration",
    "MixerChannel",
    "MixerSetup",
    "AudioDeviceInfo",
    "ProcessInfo",
    "LevelPair",
    "ChannelLevels",
    "MasterLevels",
    "AudioMetrics",
    "StreamingStatus",
    "RecordingStatus",
]
