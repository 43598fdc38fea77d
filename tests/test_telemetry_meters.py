import asyncio

import pytest

from domain.models import AudioMetrics, LevelPair, RecordingStatus, StreamingStatus
from domain.settings import ConsoleSettings
from gateway import InMemoryEngine, RemoteCallGateway
from telemetry.meters import (
    MixerLevelStore,
    MixerTelemetryService,
    parse_channel_levels,
    parse_master_levels,
)
from telemetry.poller import PollerState
from telemetry.status import recording_status_monitor, streaming_status_monitor

SLOW = ConsoleSettings(
    level_poll_interval=60.0,
    metrics_poll_interval=60.0,
    streaming_status_interval=60.0,
    recording_status_interval=60.0,
)


def test_parse_channel_levels_accepts_mono_and_stereo() -> None:
    mono = parse_channel_levels([0.5, 0.25])
    assert mono.left == mono.right == LevelPair(peak=0.5, rms=0.25)

    stereo = parse_channel_levels([0.5, 0.25, 0.75, 0.5])
    assert stereo.right == LevelPair(peak=0.75, rms=0.5)
    assert stereo.mono == LevelPair(peak=0.75, rms=0.375)

    with pytest.raises(ValueError):
        parse_channel_levels([0.5, 0.25, 0.75])
    with pytest.raises(ValueError):
        parse_master_levels([0.1, 0.2])


def test_store_keeps_exact_values_while_view_is_throttled() -> None:
    store = MixerLevelStore(render_threshold=0.125)

    assert store.apply_channel_levels({1: [0.5, 0.25]})
    first = store.vu_view(1)
    assert first.count("off") == 10

    assert store.apply_channel_levels({1: [0.5625, 0.25]})
    assert store.channel_levels(1).left.peak == 0.5625
    assert store.vu_view(1) == first
    assert store.render_count(1) == 1

    store.apply_channel_levels({1: [0.625, 0.25]})
    assert store.vu_view(1) != first
    assert store.render_count(1) == 2

    assert not store.apply_channel_levels({1: [0.625, 0.25]})


def test_store_skips_malformed_entries() -> None:
    store = MixerLevelStore()

    changed = store.apply_channel_levels({"abc": [0.1, 0.2], 2: [0.1], "3": [0.1, 0.2, 0.3, 0.4]})

    assert changed
    assert store.channel_ids == [3]


def test_master_and_metrics_updates_report_change() -> None:
    store = MixerLevelStore()

    assert store.apply_master_levels([0.5, 0.25, 0.5, 0.25])
    assert not store.apply_master_levels([0.5, 0.25, 0.5, 0.25])
    assert store.master.left == LevelPair(peak=0.5, rms=0.25)

    assert store.apply_metrics(AudioMetrics(cpu_usage=12.5))
    assert not store.apply_metrics(AudioMetrics(cpu_usage=12.5))
    assert store.metrics is not None and store.metrics.cpu_usage == 12.5

    store.apply_channel_levels({1: [0.5, 0.25]})
    store.vu_view(1)
    store.clear_channels()
    assert store.channel_ids == []
    assert store.render_count(1) == 0


@pytest.mark.asyncio
async def test_telemetry_service_feeds_the_store(engine: InMemoryEngine, gateway: RemoteCallGateway) -> None:
    engine.set_channel_levels({1: [0.5, 0.25], 2: [0.1, 0.05, 0.2, 0.1]})
    engine.set_master_levels([0.75, 0.5, 0.625, 0.5])
    engine.set_metrics(AudioMetrics(cpu_usage=7.5, active_channels=2))
    store = MixerLevelStore()
    service = MixerTelemetryService(gateway, store, settings=SLOW)

    service.start()
    await asyncio.sleep(0)
    await service.levels.wait_idle()
    await service.metrics.wait_idle()
    service.stop()

    assert store.channel_ids == [1, 2]
    assert store.channel_levels(2).right.peak == 0.2
    assert store.master.left.peak == 0.75
    assert store.metrics is not None and store.metrics.active_channels == 2


@pytest.mark.asyncio
async def test_telemetry_waits_for_engine_readiness(engine: InMemoryEngine, gateway: RemoteCallGateway) -> None:
    store = MixerLevelStore()
    service = MixerTelemetryService(gateway, store, settings=SLOW, ready=lambda: False)

    service.start()
    await asyncio.sleep(0)
    assert service.levels.state is PollerState.SUSPENDED
    assert engine.call_count("get_channel_levels") == 0

    service.set_ready(True)
    await asyncio.sleep(0)
    await service.levels.wait_idle()
    assert engine.call_count("get_channel_levels") == 1
    service.stop()


@pytest.mark.asyncio
async def test_status_monitor_notifies_on_change_only(
    engine: InMemoryEngine, gateway: RemoteCallGateway
) -> None:
    engine.set_streaming_status(StreamingStatus(is_connected=True, is_streaming=True, current_listeners=12))
    monitor = streaming_status_monitor(gateway, SLOW)
    seen: list[StreamingStatus] = []
    monitor.add_listener(seen.append)

    status = await monitor.refresh()
    await monitor.refresh()

    assert status.current_listeners == 12
    assert len(seen) == 1
    assert monitor.status == status


@pytest.mark.asyncio
async def test_status_poll_failure_keeps_last_status(
    engine: InMemoryEngine, gateway: RemoteCallGateway
) -> None:
    engine.set_recording_status(RecordingStatus(is_recording=True, current_file="set.wav", duration_seconds=4.0))
    monitor = recording_status_monitor(gateway, SLOW)

    monitor.start()
    await asyncio.sleep(0)
    await monitor.poller.wait_idle()
    engine.fail_next("get_recording_status")
    monitor.poller.tick()
    await monitor.poller.wait_idle()
    monitor.stop()

    assert monitor.poller.failure_count == 1
    assert monitor.status is not None
    assert monitor.status.current_file == "set.wav"
