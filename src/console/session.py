"""Session lifecycle: bind caches to the active configuration.

The :class:`SessionLifecycleManager` owns one instance of every store and
wires them together.  Whenever the configuration store reports that the
active configuration changed, channel strips, effect parameters and
per-channel meter readings keyed by the old configuration are dropped
synchronously, so nothing can read state that belongs to another
configuration, and are then reloaded for the new one.
"""
from __future__ import annotations

import logging
from typing import List, Optional

from domain.models import MixerConfiguration, MixerSetup
from domain.settings import ConsoleSettings
from gateway.client import RemoteCallGateway
from telemetry.meters import MixerLevelStore, MixerTelemetryService
from telemetry.poller import Poller

from .applications import ApplicationAudioManager
from .channels import ChannelStateCache
from .configurations import ConfigurationStore
from .devices import DeviceEntry, DeviceRegistry
from .effects import EffectsParameterCache

logger = logging.getLogger(__name__)


class SessionLifecycleManager:
    """Construct, connect and dispose the console's state containers."""

    def __init__(
        self,
        gateway: RemoteCallGateway,
        *,
        settings: ConsoleSettings | None = None,
    ) -> None:
        settings = settings or ConsoleSettings()
        self._gateway = gateway
        self._settings = settings
        self.devices = DeviceRegistry(gateway)
        self.configurations = ConfigurationStore(gateway)
        self.channels = ChannelStateCache(
            gateway,
            gain_bounds=(settings.gain_min_db, settings.gain_max_db),
            device_check=self.devices.ensure_selectable,
        )
        self.effects = EffectsParameterCache(gateway)
        self.applications = ApplicationAudioManager(gateway)
        self.levels = MixerLevelStore(render_threshold=settings.render_threshold)
        self.telemetry = MixerTelemetryService(
            gateway, self.levels, settings=settings, ready=lambda: self._engine_ready
        )
        self.device_refresh: Poller = Poller(
            "device-refresh",
            lambda: self.devices.fetch_live(rescan=True),
            self.devices.apply_live,
            interval=settings.device_refresh_interval,
        )
        self._engine_ready = False
        self._bound_configuration_id: Optional[int] = None
        self._disposed = False
        self.configurations.add_listener(self._on_active_configuration_changed)
        self.configurations.add_teardown_hook(
            self.channels.teardown_streams, self.channels.restore_streams
        )

    @property
    def settings(self) -> ConsoleSettings:
        return self._settings

    @property
    def engine_ready(self) -> bool:
        return self._engine_ready

    @property
    def bound_configuration_id(self) -> Optional[int]:
        """Configuration the channel and effect caches currently reflect."""

        return self._bound_configuration_id

    @property
    def disposed(self) -> bool:
        return self._disposed

    async def initialize_engine(self) -> MixerSetup:
        """Create the engine mixer from its default layout."""

        setup = await self._gateway.call("get_dj_mixer_config", response_model=MixerSetup)
        await self._gateway.call("create_mixer", {"config": setup.model_dump(mode="json")})
        self._engine_ready = True
        self.telemetry.set_ready(True)
        logger.info("engine mixer created with %d channels", len(setup.channels))
        return setup

    async def start(self) -> None:
        """Bring the console up and begin background polling."""

        await self.initialize_engine()
        await self.devices.enumerate()
        await self.configurations.load_configurations()
        await self.reload()
        self.telemetry.start()
        self.device_refresh.start()

    async def select_configuration(
        self, reusable_id: int, session_name: Optional[str] = None
    ) -> MixerConfiguration:
        configuration = await self.configurations.select_configuration(reusable_id, session_name)
        await self.reload()
        return configuration

    async def reload(self) -> None:
        """Load the channel cache for the active configuration and bind effects to it."""

        configuration_id = self.configurations.active_configuration_id
        if configuration_id is None:
            self._bound_configuration_id = None
            return
        await self.channels.load(configuration_id)
        if self.configurations.active_configuration_id != configuration_id:
            logger.debug("configuration %s replaced during reload", configuration_id)
            return
        self.effects.bind(configuration_id)
        self._bound_configuration_id = configuration_id

    def configured_device_entries(self) -> List[DeviceEntry]:
        """Configured devices of the active session tagged by live availability."""

        return self.devices.diff(self.configurations.configured_devices)

    def dispose(self) -> None:
        """Stop every poller and drop cached state."""

        if self._disposed:
            return
        self.telemetry.stop()
        self.device_refresh.stop()
        self.channels.invalidate()
        self.effects.invalidate()
        self.levels.clear_channels()
        self._engine_ready = False
        self._bound_configuration_id = None
        self._disposed = True
        logger.debug("session lifecycle manager disposed")

    def _on_active_configuration_changed(
        self, previous_id: Optional[int], current_id: Optional[int]
    ) -> None:
        logger.info("active configuration changed from %s to %s", previous_id, current_id)
        self.channels.invalidate()
        self.effects.invalidate()
        self.levels.clear_channels()
        self._bound_configuration_id = None


__all__ = ["SessionLifecycleManager"]
