"""Per-channel effect membership and parameter cache.

Each channel may carry an equalizer, a compressor and a limiter.  Adding
an effect that is already active is a no-op, parameters are clamped to
their documented ranges before they are sent, and enabling or disabling
an effect never touches its stored values so users can A/B quickly.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np

from domain.models import (
    COMPRESSOR_ATTACK_RANGE_MS,
    COMPRESSOR_RATIO_RANGE,
    COMPRESSOR_RELEASE_RANGE_MS,
    COMPRESSOR_THRESHOLD_RANGE_DB,
    EQ_GAIN_RANGE_DB,
    LIMITER_THRESHOLD_RANGE_DB,
    ChannelEffects,
    CompressorSettings,
    EffectType,
    EqualizerSettings,
    LimiterSettings,
)
from gateway.client import RemoteCallGateway

logger = logging.getLogger(__name__)

EQ_BANDS = ("low", "mid", "high")

# section -> (command, {model field: wire argument})
_SECTIONS: Dict[str, Tuple[str, Dict[str, str]]] = {
    "equalizer": (
        "update_channel_eq",
        {"low_gain": "eqLowGain", "mid_gain": "eqMidGain", "high_gain": "eqHighGain", "enabled": "enabled"},
    ),
    "compressor": (
        "update_channel_compressor",
        {
            "threshold": "threshold",
            "ratio": "ratio",
            "attack_ms": "attackMs",
            "release_ms": "releaseMs",
            "enabled": "enabled",
        },
    ),
    "limiter": (
        "update_channel_limiter",
        {"threshold": "thresholdDb", "enabled": "enabled"},
    ),
}


def _clamp(value: float, bounds: Tuple[float, float]) -> float:
    return float(np.clip(value, bounds[0], bounds[1]))


class EffectsParameterCache:
    """Effect state per channel for the active configuration."""

    def __init__(self, gateway: RemoteCallGateway) -> None:
        self._gateway = gateway
        self._effects: Dict[int, ChannelEffects] = {}
        self._configuration_id: Optional[int] = None
        self._generation = 0

    @property
    def configuration_id(self) -> Optional[int]:
        return self._configuration_id

    def bind(self, configuration_id: Optional[int]) -> None:
        """Associate the cache with a configuration, dropping any other state."""

        if configuration_id != self._configuration_id:
            self.invalidate()
            self._configuration_id = configuration_id

    def invalidate(self) -> None:
        self._generation += 1
        self._effects = {}
        self._configuration_id = None

    def get(self, channel_id: int) -> Optional[ChannelEffects]:
        effects = self._effects.get(channel_id)
        return None if effects is None else effects.model_copy(deep=True)

    def active_effects(self, channel_id: int) -> List[EffectType]:
        effects = self._effects.get(channel_id)
        return [] if effects is None else list(effects.active)

    async def load(self, channel_id: int) -> ChannelEffects:
        token = self._generation
        effects = await self._gateway.call(
            "get_channel_effects", {"channelId": channel_id}, response_model=ChannelEffects
        )
        if token == self._generation:
            self._effects[channel_id] = effects
        else:
            logger.debug("discarding stale effects load for channel %s", channel_id)
        return effects.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------
    async def add_effect(self, channel_id: int, effect_type: Union[EffectType, str]) -> List[EffectType]:
        """Activate ``effect_type``; activating an already-active effect does nothing."""

        kind = EffectType(effect_type)
        effects = await self._ensure(channel_id)
        if kind in effects.active:
            return list(effects.active)
        token = self._generation
        await self._gateway.call(
            "add_channel_effect", {"channelId": channel_id, "effectType": kind.value}
        )
        if token == self._generation and channel_id in self._effects:
            current = self._effects[channel_id]
            if kind not in current.active:
                current.active.append(kind)
        return self.active_effects(channel_id)

    async def remove_effect(self, channel_id: int, effect_type: Union[EffectType, str]) -> List[EffectType]:
        kind = EffectType(effect_type)
        effects = await self._ensure(channel_id)
        if kind not in effects.active:
            return list(effects.active)
        token = self._generation
        await self._gateway.call(
            "remove_channel_effect", {"channelId": channel_id, "effectType": kind.value}
        )
        if token == self._generation and channel_id in self._effects:
            current = self._effects[channel_id]
            if kind in current.active:
                current.active.remove(kind)
        return self.active_effects(channel_id)

    # ------------------------------------------------------------------
    # Equalizer
    # ------------------------------------------------------------------
    async def set_eq_band(self, channel_id: int, band: str, gain: float) -> EqualizerSettings:
        if band not in EQ_BANDS:
            raise ValueError(f"Unknown EQ band {band!r}; expected one of {EQ_BANDS}")
        return await self.set_eq(channel_id, **{band: gain})

    async def set_eq(
        self,
        channel_id: int,
        *,
        low: Optional[float] = None,
        mid: Optional[float] = None,
        high: Optional[float] = None,
    ) -> EqualizerSettings:
        updates: Dict[str, Any] = {}
        for field, value in (("low_gain", low), ("mid_gain", mid), ("high_gain", high)):
            if value is not None:
                updates[field] = _clamp(value, EQ_GAIN_RANGE_DB)
        return await self._update(channel_id, "equalizer", updates)

    async def set_eq_enabled(self, channel_id: int, enabled: bool) -> EqualizerSettings:
        return await self._update(channel_id, "equalizer", {"enabled": bool(enabled)})

    async def reset_eq(self, channel_id: int) -> EqualizerSettings:
        """Flatten all bands to 0 dB; the enabled flag is left as it is."""

        flat = EqualizerSettings()
        return await self._update(
            channel_id,
            "equalizer",
            {"low_gain": flat.low_gain, "mid_gain": flat.mid_gain, "high_gain": flat.high_gain},
        )

    # ------------------------------------------------------------------
    # Compressor
    # ------------------------------------------------------------------
    async def set_compressor(
        self,
        channel_id: int,
        *,
        threshold: Optional[float] = None,
        ratio: Optional[float] = None,
        attack_ms: Optional[float] = None,
        release_ms: Optional[float] = None,
    ) -> CompressorSettings:
        bounds = {
            "threshold": (threshold, COMPRESSOR_THRESHOLD_RANGE_DB),
            "ratio": (ratio, COMPRESSOR_RATIO_RANGE),
            "attack_ms": (attack_ms, COMPRESSOR_ATTACK_RANGE_MS),
            "release_ms": (release_ms, COMPRESSOR_RELEASE_RANGE_MS),
        }
        updates = {
            field: _clamp(value, limits) for field, (value, limits) in bounds.items() if value is not None
        }
        return await self._update(channel_id, "compressor", updates)

    async def set_compressor_enabled(self, channel_id: int, enabled: bool) -> CompressorSettings:
        return await self._update(channel_id, "compressor", {"enabled": bool(enabled)})

    async def toggle_compressor(self, channel_id: int) -> CompressorSettings:
        effects = await self._ensure(channel_id)
        return await self.set_compressor_enabled(channel_id, not effects.compressor.enabled)

    async def reset_compressor(self, channel_id: int) -> CompressorSettings:
        return await self._update(channel_id, "compressor", CompressorSettings().model_dump())

    # ------------------------------------------------------------------
    # Limiter
    # ------------------------------------------------------------------
    async def set_limiter_threshold(self, channel_id: int, threshold: float) -> LimiterSettings:
        return await self._update(
            channel_id, "limiter", {"threshold": _clamp(threshold, LIMITER_THRESHOLD_RANGE_DB)}
        )

    async def set_limiter_enabled(self, channel_id: int, enabled: bool) -> LimiterSettings:
        return await self._update(channel_id, "limiter", {"enabled": bool(enabled)})

    async def toggle_limiter(self, channel_id: int) -> LimiterSettings:
        effects = await self._ensure(channel_id)
        return await self.set_limiter_enabled(channel_id, not effects.limiter.enabled)

    async def reset_limiter(self, channel_id: int) -> LimiterSettings:
        return await self._update(channel_id, "limiter", LimiterSettings().model_dump())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _ensure(self, channel_id: int) -> ChannelEffects:
        effects = self._effects.get(channel_id)
        if effects is None:
            await self.load(channel_id)
            effects = self._effects.get(channel_id)
            if effects is None:
                raise KeyError(f"Effects for channel {channel_id!r} were invalidated while loading")
        return effects

    async def _update(self, channel_id: int, section: str, updates: Mapping[str, Any]) -> Any:
        effects = await self._ensure(channel_id)
        if not updates:
            return getattr(effects, section).model_copy()
        command, keys = _SECTIONS[section]
        args: Dict[str, Any] = {"channelId": channel_id}
        args.update({keys[field]: value for field, value in updates.items()})
        token = self._generation
        await self._gateway.call(command, args)
        current = self._effects.get(channel_id)
        if token != self._generation or current is None:
            logger.debug("discarding %s result for stale configuration", command)
            return getattr(effects, section).model_copy(update=dict(updates))
        settings = getattr(current, section).model_copy(update=dict(updates))
        setattr(current, section, settings)
        return settings.model_copy()


__all__ = ["EffectsParameterCache", "EQ_BANDS"]
