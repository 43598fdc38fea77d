import asyncio
from typing import Any, Mapping

import pytest

from console.configurations import ConfigurationStore
from domain.models import ConfigurationType, MixerConfiguration
from gateway import InMemoryEngine, RemoteCallGateway, StateConflictError, TransportError, ValidationError


def _seed(engine: InMemoryEngine) -> list[MixerConfiguration]:
    return [
        engine.add_reusable_configuration("Club Night", device_ids=["mic-1", "mic-2"], is_default=True),
        engine.add_reusable_configuration("Radio Show", description="Talk + music", device_ids=["mic-1"]),
        engine.add_reusable_configuration("Rehearsal"),
    ]


@pytest.mark.asyncio
async def test_load_exposes_reusable_configurations_without_session(
    engine: InMemoryEngine, gateway: RemoteCallGateway
) -> None:
    presets = _seed(engine)
    store = ConfigurationStore(gateway)

    await store.load_configurations()

    assert store.loaded
    assert [config.id for config in store.reusable_configurations] == [p.id for p in presets]
    assert store.active_session is None
    assert store.active_configuration_id is None
    assert store.configured_devices == []


@pytest.mark.asyncio
async def test_select_configuration_creates_linked_active_session(
    engine: InMemoryEngine, gateway: RemoteCallGateway
) -> None:
    club, radio, _ = _seed(engine)
    store = ConfigurationStore(gateway)
    await store.load_configurations()

    first = await store.select_configuration(club.id)
    assert first.reusable_configuration_id == club.id
    assert first.session_active
    assert first.configuration_type is ConfigurationType.SESSION
    assert first.name == "Club Night (Session)"
    assert [d.device_identifier for d in store.configured_devices] == ["mic-1", "mic-2"]

    second = await store.select_configuration(radio.id, session_name="Tuesday")
    assert second.name == "Tuesday"
    assert store.active_configuration_id == second.id

    previous = next(session for session in store.sessions if session.id == first.id)
    assert previous.session_active is False
    assert [s.id for s in store.sessions if s.session_active] == [second.id]
    assert [s.id for s in engine.active_sessions()] == [second.id]


@pytest.mark.asyncio
async def test_single_active_session_across_repeated_selects(
    engine: InMemoryEngine, gateway: RemoteCallGateway
) -> None:
    presets = _seed(engine)
    store = ConfigurationStore(gateway)
    await store.load_configurations()

    for preset in presets * 2:
        await store.select_configuration(preset.id)
        assert len([s for s in store.sessions if s.session_active]) == 1
        assert len(engine.active_sessions()) == 1

    await store.load_configurations()
    assert store.active_configuration_id == engine.active_sessions()[0].id


class UnlinkedSessionTransport:
    """Engine stand-in whose active session has no preset link."""

    def __init__(self) -> None:
        self.commands: list[str] = []

    async def invoke(self, command: str, args: Mapping[str, Any]) -> Any:
        self.commands.append(command)
        if command == "get_reusable_configurations":
            return [{"id": 1, "name": "Club Night"}]
        if command == "get_active_session_configuration":
            return {
                "configuration": {
                    "id": 7,
                    "name": "Scratch",
                    "configuration_type": "session",
                    "session_active": True,
                }
            }
        raise AssertionError(f"unexpected command {command}")


@pytest.mark.asyncio
async def test_save_to_unlinked_session_is_a_state_conflict() -> None:
    transport = UnlinkedSessionTransport()
    store = ConfigurationStore(RemoteCallGateway(transport))
    await store.load_configurations()
    before = (store.reusable_configurations, store.active_session)

    with pytest.raises(StateConflictError, match="not linked"):
        await store.save_session_to_reusable()

    assert "save_session_to_reusable" not in transport.commands
    assert (store.reusable_configurations, store.active_session) == before
    assert store.active_configuration_id == 7


@pytest.mark.asyncio
async def test_save_to_reusable_without_session_is_a_state_conflict(gateway: RemoteCallGateway) -> None:
    store = ConfigurationStore(gateway)
    await store.load_configurations()

    with pytest.raises(StateConflictError, match="No active session"):
        await store.save_session_to_reusable()


@pytest.mark.asyncio
async def test_save_to_reusable_updates_linked_preset(
    engine: InMemoryEngine, gateway: RemoteCallGateway
) -> None:
    club, _, _ = _seed(engine)
    store = ConfigurationStore(gateway)
    await store.load_configurations()
    session = await store.select_configuration(club.id)

    await gateway.call(
        "update_audio_effects_default_gain",
        {"deviceId": "mic-1", "configurationId": session.id, "gain": -6.0},
    )
    updated = await store.save_session_to_reusable()

    assert updated.id == club.id
    assert engine.effects_default("mic-1", club.id).gain == -6.0


@pytest.mark.asyncio
async def test_save_as_new_reusable_relinks_active_session(
    engine: InMemoryEngine, gateway: RemoteCallGateway
) -> None:
    club, _, _ = _seed(engine)
    store = ConfigurationStore(gateway)
    await store.load_configurations()
    session = await store.select_configuration(club.id)

    created = await store.save_session_as_new_reusable("  Late Set  ", "after midnight")

    assert created.name == "Late Set"
    assert created.configuration_type is ConfigurationType.REUSABLE
    assert created.id in [config.id for config in store.reusable_configurations]
    assert store.active_session is not None
    assert store.active_session.reusable_configuration_id == created.id
    relinked = next(s for s in store.sessions if s.id == session.id)
    assert relinked.reusable_configuration_id == created.id
    assert relinked.session_active
    assert engine.configuration(session.id).reusable_configuration_id == created.id
    assert [d.device_identifier for d in engine.configured_devices(created.id)] == ["mic-1", "mic-2"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "name, description",
    [("", None), ("   ", None), ("Valid", "x" * 501)],
)
async def test_save_as_new_reusable_validates_before_calling(
    engine: InMemoryEngine, gateway: RemoteCallGateway, name: str, description: str | None
) -> None:
    club, _, _ = _seed(engine)
    store = ConfigurationStore(gateway)
    await store.load_configurations()
    await store.select_configuration(club.id)

    with pytest.raises(ValidationError):
        await store.save_session_as_new_reusable(name, description)

    assert engine.call_count("save_session_as_new_reusable") == 0


@pytest.mark.asyncio
async def test_save_as_new_reusable_without_session_is_a_state_conflict(
    engine: InMemoryEngine, gateway: RemoteCallGateway
) -> None:
    store = ConfigurationStore(gateway)
    await store.load_configurations()

    with pytest.raises(StateConflictError):
        await store.save_session_as_new_reusable("Orphan")

    assert engine.call_count("save_session_as_new_reusable") == 0


@pytest.mark.asyncio
async def test_failed_load_keeps_previous_contents(engine: InMemoryEngine, gateway: RemoteCallGateway) -> None:
    club, _, _ = _seed(engine)
    store = ConfigurationStore(gateway)
    await store.load_configurations()
    session = await store.select_configuration(club.id)
    engine.add_reusable_configuration("Added Later")
    engine.fail_next("get_active_session_configuration")

    with pytest.raises(TransportError):
        await store.load_configurations()

    assert len(store.reusable_configurations) == 3
    assert store.active_configuration_id == session.id


@pytest.mark.asyncio
async def test_listeners_see_active_id_changes(engine: InMemoryEngine, gateway: RemoteCallGateway) -> None:
    club, radio, _ = _seed(engine)
    store = ConfigurationStore(gateway)
    changes: list[tuple[int | None, int | None]] = []
    store.add_listener(lambda previous, current: changes.append((previous, current)))

    await store.load_configurations()
    first = await store.select_configuration(club.id)
    await store.load_configurations()
    second = await store.select_configuration(radio.id)

    assert changes == [(None, first.id), (first.id, second.id)]


@pytest.mark.asyncio
async def test_teardown_hooks_run_before_the_session_is_replaced(
    engine: InMemoryEngine, gateway: RemoteCallGateway
) -> None:
    club, radio, _ = _seed(engine)
    store = ConfigurationStore(gateway)
    torn_down: list[tuple[int, int]] = []

    async def hook(configuration: MixerConfiguration) -> None:
        torn_down.append((configuration.id, engine.call_count("create_session_from_reusable")))

    store.add_teardown_hook(hook)
    await store.load_configurations()
    first = await store.select_configuration(club.id)
    assert torn_down == []

    await store.select_configuration(radio.id)
    assert torn_down == [(first.id, 1)]


@pytest.mark.asyncio
async def test_load_overtaken_by_select_is_discarded(engine: InMemoryEngine, gateway: RemoteCallGateway) -> None:
    club, _, _ = _seed(engine)
    store = ConfigurationStore(gateway)
    engine.hold("get_active_session_configuration")

    load = asyncio.ensure_future(store.load_configurations())
    await asyncio.sleep(0.01)
    assert engine.call_count("get_reusable_configurations") == 1

    session = await store.select_configuration(club.id)
    created = await store.save_session_as_new_reusable("Late Set")
    engine.release("get_active_session_configuration")
    await load

    assert store.active_configuration_id == session.id
    assert created.id in [config.id for config in store.reusable_configurations]
    assert [s.id for s in store.sessions if s.session_active] == [session.id]
    assert [s.id for s in engine.active_sessions()] == [session.id]


@pytest.mark.asyncio
async def test_failed_select_undoes_teardown_and_keeps_the_session(
    engine: InMemoryEngine, gateway: RemoteCallGateway
) -> None:
    club, radio, _ = _seed(engine)
    store = ConfigurationStore(gateway)
    events: list[tuple[str, int]] = []

    async def close(configuration: MixerConfiguration) -> None:
        events.append(("close", configuration.id))

    async def reopen(configuration: MixerConfiguration) -> None:
        events.append(("reopen", configuration.id))

    store.add_teardown_hook(close, reopen)
    await store.load_configurations()
    session = await store.select_configuration(club.id)
    engine.fail_next("create_session_from_reusable")

    with pytest.raises(TransportError):
        await store.select_configuration(radio.id)

    assert events == [("close", session.id), ("reopen", session.id)]
    assert store.active_configuration_id == session.id
    assert [s.id for s in engine.active_sessions()] == [session.id]
