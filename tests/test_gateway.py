from typing import Any, List, Mapping

import pytest

from domain.models import AudioDeviceInfo, MixerConfiguration
from domain.settings import ConsoleSettings
from gateway import (
    GatewayError,
    InMemoryEngine,
    RemoteCallGateway,
    StateConflictError,
    TransportError,
    ValidationError,
    raise_engine_error,
)


class ScriptedTransport:
    def __init__(self, response: Any = None, error: BaseException | None = None) -> None:
        self.response = response
        self.error = error
        self.calls: list[tuple[str, dict]] = []

    async def invoke(self, command: str, args: Mapping[str, Any]) -> Any:
        self.calls.append((command, dict(args)))
        if self.error is not None:
            raise self.error
        return self.response


@pytest.mark.asyncio
async def test_call_returns_raw_and_validated_responses(gateway: RemoteCallGateway) -> None:
    raw = await gateway.call("enumerate_audio_devices")
    assert isinstance(raw, list)
    assert raw[0]["id"] == "mic-1"

    devices = await gateway.call("enumerate_audio_devices", response_model=List[AudioDeviceInfo])
    assert all(isinstance(device, AudioDeviceInfo) for device in devices)
    assert [device.id for device in devices][:2] == ["mic-1", "mic-2"]


@pytest.mark.asyncio
async def test_malformed_response_is_a_transport_error() -> None:
    gateway = RemoteCallGateway(ScriptedTransport(response={"unexpected": True}))

    with pytest.raises(TransportError) as excinfo:
        await gateway.call("get_reusable_configurations", response_model=List[MixerConfiguration])

    assert excinfo.value.command == "get_reusable_configurations"


@pytest.mark.asyncio
async def test_unexpected_transport_exception_is_wrapped() -> None:
    gateway = RemoteCallGateway(ScriptedTransport(error=ConnectionResetError("pipe closed")))

    with pytest.raises(TransportError) as excinfo:
        await gateway.call("get_mixer_metrics")

    assert "pipe closed" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, ConnectionResetError)


@pytest.mark.asyncio
async def test_engine_validation_errors_propagate_with_command(gateway: RemoteCallGateway) -> None:
    with pytest.raises(ValidationError) as excinfo:
        await gateway.call("add_input_stream", {"deviceId": "does-not-exist"})

    assert excinfo.value.command == "add_input_stream"
    assert str(excinfo.value).startswith("add_input_stream:")


@pytest.mark.asyncio
async def test_unanswered_call_times_out_as_transport_error(engine: InMemoryEngine) -> None:
    gateway = RemoteCallGateway(engine, timeout=5.0)
    engine.hold("get_mixer_metrics")

    with pytest.raises(TransportError, match="no response"):
        await gateway.call("get_mixer_metrics", timeout=0.05)


@pytest.mark.asyncio
async def test_failures_are_not_retried(engine: InMemoryEngine, gateway: RemoteCallGateway) -> None:
    engine.fail_next("get_master_levels")

    with pytest.raises(TransportError):
        await gateway.call("get_master_levels")

    assert engine.call_count("get_master_levels") == 1
    assert await gateway.call("get_master_levels") == [0.0, 0.0, 0.0, 0.0]


@pytest.mark.asyncio
async def test_unknown_command_is_rejected(gateway: RemoteCallGateway) -> None:
    with pytest.raises(ValidationError):
        await gateway.call("launch_rockets")


@pytest.mark.asyncio
async def test_gateway_records_command_history(gateway: RemoteCallGateway) -> None:
    await gateway.call("get_master_levels")
    await gateway.call("set_output_stream", {"deviceId": "speakers"})

    assert gateway.command_history() == [
        ("get_master_levels", {}),
        ("set_output_stream", {"deviceId": "speakers"}),
    ]


@pytest.mark.asyncio
async def test_command_history_keeps_only_recent_calls(engine: InMemoryEngine) -> None:
    gateway = RemoteCallGateway(engine, history_size=3)

    for _ in range(10):
        await gateway.call("get_master_levels")
    await gateway.call("set_output_stream", {"deviceId": "speakers"})

    history = gateway.command_history()
    assert len(history) == 3
    assert history[-1] == ("set_output_stream", {"deviceId": "speakers"})
    assert engine.call_count("get_master_levels") == 10

    with pytest.raises(ValueError):
        RemoteCallGateway(engine, history_size=-1)


def test_raise_engine_error_maps_kinds() -> None:
    with pytest.raises(StateConflictError):
        raise_engine_error("state_conflict", "no link", command="save_session_to_reusable")
    with pytest.raises(ValidationError):
        raise_engine_error("validation", "bad id")
    with pytest.raises(TransportError):
        raise_engine_error("kernel_panic", "??")


def test_gateway_rejects_non_positive_timeout() -> None:
    with pytest.raises(ValueError):
        RemoteCallGateway(InMemoryEngine(), timeout=0.0)


def test_error_hierarchy_and_kinds() -> None:
    for error_cls in (TransportError, ValidationError, StateConflictError):
        assert issubclass(error_cls, GatewayError)
    assert [cls.kind for cls in (TransportError, ValidationError, StateConflictError)] == [
        "transport",
        "validation",
        "state_conflict",
    ]


def test_gateway_timeout_follows_settings() -> None:
    gateway = RemoteCallGateway.from_settings(InMemoryEngine(), ConsoleSettings(rpc_timeout_seconds=2.5))
    assert gateway.timeout == 2.5

    from_env = RemoteCallGateway.from_settings(
        InMemoryEngine(), ConsoleSettings.from_environment({"MIXCONSOLE_RPC_TIMEOUT": "4"})
    )
    assert from_env.timeout == 4.0
