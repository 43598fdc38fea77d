import asyncio

import pytest

from console.effects import EffectsParameterCache
from domain.models import CompressorSettings, EffectType, EqualizerSettings, LimiterSettings
from gateway import InMemoryEngine, RemoteCallGateway, TransportError


@pytest.mark.asyncio
async def test_adding_an_active_effect_is_a_no_op(engine: InMemoryEngine, gateway: RemoteCallGateway) -> None:
    effects = EffectsParameterCache(gateway)

    assert await effects.add_effect(1, EffectType.EQUALIZER) == [EffectType.EQUALIZER]
    assert await effects.add_effect(1, "equalizer") == [EffectType.EQUALIZER]
    assert await effects.add_effect(1, EffectType.LIMITER) == [EffectType.EQUALIZER, EffectType.LIMITER]

    assert engine.call_count("add_channel_effect") == 2
    assert engine.call_count("get_channel_effects") == 1


@pytest.mark.asyncio
async def test_remove_effect_only_calls_for_active_effects(
    engine: InMemoryEngine, gateway: RemoteCallGateway
) -> None:
    effects = EffectsParameterCache(gateway)
    await effects.add_effect(2, EffectType.COMPRESSOR)

    assert await effects.remove_effect(2, EffectType.LIMITER) == [EffectType.COMPRESSOR]
    assert await effects.remove_effect(2, EffectType.COMPRESSOR) == []
    assert engine.call_count("remove_channel_effect") == 1


@pytest.mark.asyncio
async def test_failed_add_leaves_membership_unchanged(engine: InMemoryEngine, gateway: RemoteCallGateway) -> None:
    effects = EffectsParameterCache(gateway)
    await effects.load(1)
    engine.fail_next("add_channel_effect")

    with pytest.raises(TransportError):
        await effects.add_effect(1, EffectType.EQUALIZER)

    assert effects.active_effects(1) == []


@pytest.mark.asyncio
async def test_parameters_are_clamped_before_sending(engine: InMemoryEngine, gateway: RemoteCallGateway) -> None:
    effects = EffectsParameterCache(gateway)

    eq = await effects.set_eq(1, low=18.0, mid=-3.0, high=-30.0)
    assert (eq.low_gain, eq.mid_gain, eq.high_gain) == (12.0, -3.0, -12.0)
    _, args = engine.calls[-1]
    assert args == {"channelId": 1, "eqLowGain": 12.0, "eqMidGain": -3.0, "eqHighGain": -12.0}

    compressor = await effects.set_compressor(1, threshold=-60.0, ratio=25.0, attack_ms=0.0, release_ms=5000.0)
    assert (compressor.threshold, compressor.ratio, compressor.attack_ms, compressor.release_ms) == (
        -40.0,
        10.0,
        0.1,
        1000.0,
    )

    limiter = await effects.set_limiter_threshold(1, 3.0)
    assert limiter.threshold == 0.0


@pytest.mark.asyncio
async def test_single_band_update(engine: InMemoryEngine, gateway: RemoteCallGateway) -> None:
    effects = EffectsParameterCache(gateway)

    eq = await effects.set_eq_band(1, "mid", 4.5)

    assert (eq.low_gain, eq.mid_gain, eq.high_gain) == (0.0, 4.5, 0.0)
    with pytest.raises(ValueError):
        await effects.set_eq_band(1, "presence", 1.0)


@pytest.mark.asyncio
async def test_reset_eq_flattens_bands(engine: InMemoryEngine, gateway: RemoteCallGateway) -> None:
    effects = EffectsParameterCache(gateway)
    await effects.set_eq(1, low=6.0, mid=-6.0, high=3.0)

    eq = await effects.reset_eq(1)

    assert eq == EqualizerSettings()
    assert effects.get(1).equalizer == EqualizerSettings()


@pytest.mark.asyncio
async def test_reset_eq_keeps_a_disabled_equalizer_disabled(
    engine: InMemoryEngine, gateway: RemoteCallGateway
) -> None:
    effects = EffectsParameterCache(gateway)
    await effects.set_eq(1, low=6.0, mid=-6.0, high=3.0)
    await effects.set_eq_enabled(1, False)

    eq = await effects.reset_eq(1)

    assert eq == EqualizerSettings(enabled=False)
    assert effects.get(1).equalizer.enabled is False
    _, args = engine.calls[-1]
    assert args == {"channelId": 1, "eqLowGain": 0.0, "eqMidGain": 0.0, "eqHighGain": 0.0}


@pytest.mark.asyncio
async def test_enable_toggles_keep_parameter_values(engine: InMemoryEngine, gateway: RemoteCallGateway) -> None:
    effects = EffectsParameterCache(gateway)
    await effects.set_compressor(1, threshold=-20.0, ratio=6.0)
    await effects.set_limiter_threshold(1, -3.0)

    enabled = await effects.toggle_compressor(1)
    assert enabled.enabled is True
    assert (enabled.threshold, enabled.ratio) == (-20.0, 6.0)
    disabled = await effects.toggle_compressor(1)
    assert disabled.enabled is False
    assert (disabled.threshold, disabled.ratio) == (-20.0, 6.0)

    limiter = await effects.toggle_limiter(1)
    assert (limiter.enabled, limiter.threshold) == (True, -3.0)

    eq = await effects.set_eq_enabled(1, False)
    assert eq.enabled is False

    _, args = engine.calls[-1]
    assert args == {"channelId": 1, "enabled": False}


@pytest.mark.asyncio
async def test_reset_restores_documented_defaults(engine: InMemoryEngine, gateway: RemoteCallGateway) -> None:
    effects = EffectsParameterCache(gateway)
    await effects.set_compressor(1, threshold=-30.0, attack_ms=20.0)
    await effects.set_limiter_enabled(1, True)

    assert await effects.reset_compressor(1) == CompressorSettings()
    assert await effects.reset_limiter(1) == LimiterSettings()


@pytest.mark.asyncio
async def test_failed_update_keeps_cached_parameters(engine: InMemoryEngine, gateway: RemoteCallGateway) -> None:
    effects = EffectsParameterCache(gateway)
    await effects.set_eq(1, low=2.0)
    engine.fail_next("update_channel_eq")

    with pytest.raises(TransportError):
        await effects.set_eq(1, low=8.0)

    assert effects.get(1).equalizer.low_gain == 2.0


@pytest.mark.asyncio
async def test_bind_and_invalidate_drop_cached_state(engine: InMemoryEngine, gateway: RemoteCallGateway) -> None:
    effects = EffectsParameterCache(gateway)
    effects.bind(10)
    await effects.add_effect(1, EffectType.EQUALIZER)

    effects.bind(10)
    assert effects.active_effects(1) == [EffectType.EQUALIZER]

    effects.bind(11)
    assert effects.configuration_id == 11
    assert effects.get(1) is None

    effects.invalidate()
    assert effects.configuration_id is None


@pytest.mark.asyncio
async def test_load_overtaken_by_invalidate_is_not_cached(
    engine: InMemoryEngine, gateway: RemoteCallGateway
) -> None:
    effects = EffectsParameterCache(gateway)
    engine.hold("get_channel_effects")

    load = asyncio.ensure_future(effects.load(1))
    await asyncio.sleep(0)
    effects.invalidate()
    engine.release("get_channel_effects")
    await load

    assert effects.get(1) is None
