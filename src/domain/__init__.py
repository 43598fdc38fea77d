"""Domain package exposing console data models and runtime settings."""
from .models import (
    APPLICATION_SOURCE_PREFIX,
    COMPRESSOR_ATTACK_RANGE_MS,
    COMPRESSOR_RATIO_RANGE,
    COMPRESSOR_RELEASE_RANGE_MS,
    COMPRESSOR_THRESHOLD_RANGE_DB,
    DESCRIPTION_MAX_LENGTH,
    EQ_GAIN_RANGE_DB,
    GAIN_RANGE_DB,
    LIMITER_THRESHOLD_RANGE_DB,
    PAN_RANGE,
    AudioDeviceInfo,
    AudioMetrics,
    ChannelEffects,
    ChannelLevels,
    CompleteConfiguration,
    CompressorSettings,
    ConfigurationType,
    ConfiguredDevice,
    EffectsCustom,
    EffectsDefault,
    EffectType,
    EqualizerSettings,
    LevelPair,
    LimiterSettings,
    MasterLevels,
    MixerChannel,
    MixerConfiguration,
    MixerSetup,
    ProcessInfo,
    RecordingStatus,
    StreamingStatus,
)
from .settings import ConsoleSettings, SettingsError

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
    "AudioDeviceInfo",
    "AudioMetrics",
    "ChannelEffects",
    "ChannelLevels",
    "CompleteConfiguration",
    "CompressorSettings",
    "ConfigurationType",
    "ConfiguredDevice",
    "EffectsCustom",
    "EffectsDefault",
    "EffectType",
    "EqualizerSettings",
    "LevelPair",
    "LimiterSettings",
    "MasterLevels",
    "MixerChannel",
    "MixerConfiguration",
    "MixerSetup",
    "ProcessInfo",
    "RecordingStatus",
    "StreamingStatus",
    "ConsoleSettings",
    "SettingsError",
]
