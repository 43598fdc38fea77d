import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from domain.models import AudioDeviceInfo, MixerChannel, ProcessInfo  # noqa: E402
from gateway import InMemoryEngine, RemoteCallGateway  # noqa: E402


@pytest.fixture()
def live_devices() -> list[AudioDeviceInfo]:
    return [
        AudioDeviceInfo(id="mic-1", name="USB Mic", is_input=True, is_default=True, host_api="CoreAudio"),
        AudioDeviceInfo(id="mic-2", name="Studio Mic", is_input=True, host_api="CoreAudio"),
        AudioDeviceInfo(id="line-in", name="Line In", is_input=True, host_api="CoreAudio"),
        AudioDeviceInfo(id="speakers", name="Speakers", is_output=True, is_default=True, host_api="CoreAudio"),
        AudioDeviceInfo(id="phones", name="Headphones", is_output=True, host_api="CoreAudio"),
    ]


@pytest.fixture()
def engine(live_devices: list[AudioDeviceInfo]) -> InMemoryEngine:
    return InMemoryEngine(
        devices=live_devices,
        channels=[
            MixerChannel(id=1, name="Deck A", input_device_id="mic-1"),
            MixerChannel(id=2, name="Deck B"),
        ],
        applications=[
            ProcessInfo(pid=4242, name="Spotify", bundle_id="com.spotify.client", is_playing_audio=True),
            ProcessInfo(pid=5151, name="Browser"),
        ],
    )


@pytest.fixture()
def gateway(engine: InMemoryEngine) -> RemoteCallGateway:
    return RemoteCallGateway(engine, timeout=1.0)
