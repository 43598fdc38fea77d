"""Live device enumeration and configured-device availability tracking.

The engine assigns opaque identifiers to hardware and virtual devices.
Those identifiers can vanish (a USB interface is unplugged) and later
reappear, while configurations keep referring to them.  The registry
therefore never filters configured devices out: :meth:`DeviceRegistry.diff`
tags each one as :class:`Available` or :class:`ConfiguredButUnavailable`
so the UI can keep showing the last known name while refusing selection.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

from domain.models import AudioDeviceInfo, ConfiguredDevice
from gateway.client import RemoteCallGateway
from gateway.errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Available:
    """Configured device currently present in live enumeration."""

    device: AudioDeviceInfo

    @property
    def identifier(self) -> str:
        return self.device.id

    @property
    def display_name(self) -> str:
        return self.device.name

    @property
    def selectable(self) -> bool:
        return True


@dataclass(frozen=True)
class ConfiguredButUnavailable:
    """Configured device missing from live enumeration."""

    identifier: str
    last_known_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return f"{self.last_known_name or self.identifier} (unavailable)"

    @property
    def selectable(self) -> bool:
        return False


DeviceEntry = Union[Available, ConfiguredButUnavailable]


@dataclass(frozen=True)
class DeviceChange:
    """Identifiers added to or removed from live enumeration."""

    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.added and not self.removed


class DeviceRegistry:
    """Last-known live device list plus hot-plug notifications."""

    def __init__(self, gateway: RemoteCallGateway) -> None:
        self._gateway = gateway
        self._devices: List[AudioDeviceInfo] = []
        self._listeners: List[Callable[[DeviceChange], None]] = []
        self._loaded = False

    @property
    def devices(self) -> List[AudioDeviceInfo]:
        return list(self._devices)

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def input_devices(self) -> List[AudioDeviceInfo]:
        return [device for device in self._devices if device.is_input]

    @property
    def output_devices(self) -> List[AudioDeviceInfo]:
        return [device for device in self._devices if device.is_output]

    @property
    def default_input(self) -> Optional[AudioDeviceInfo]:
        return next((d for d in self._devices if d.is_input and d.is_default), None)

    @property
    def default_output(self) -> Optional[AudioDeviceInfo]:
        return next((d for d in self._devices if d.is_output and d.is_default), None)

    def add_listener(self, callback: Callable[[DeviceChange], None]) -> None:
        """Register a function invoked whenever a refresh changes the device set."""

        self._listeners.append(callback)

    def find(self, identifier: str) -> Optional[AudioDeviceInfo]:
        return next((d for d in self._devices if d.id == identifier), None)

    def is_valid_input(self, identifier: str) -> bool:
        device = self.find(identifier)
        return device is not None and device.is_input

    def is_valid_output(self, identifier: str) -> bool:
        device = self.find(identifier)
        return device is not None and device.is_output

    async def enumerate(self) -> List[AudioDeviceInfo]:
        """Fetch the live device list; failures keep the last-known list."""

        self.apply_live(await self.fetch_live())
        return list(self._devices)

    async def refresh(self) -> List[AudioDeviceInfo]:
        """Ask the engine to rescan hardware and return the new list."""

        self.apply_live(await self.fetch_live(rescan=True))
        return list(self._devices)

    async def handle_device_change(self) -> DeviceChange:
        """React to a system device-change notification."""

        return self.apply_live(await self.fetch_live(rescan=True))

    async def fetch_live(self, *, rescan: bool = False) -> List[AudioDeviceInfo]:
        """Return the engine's current device list without storing it."""

        command = "refresh_audio_devices" if rescan else "enumerate_audio_devices"
        devices = await self._gateway.call(command, response_model=List[AudioDeviceInfo])
        unique: Dict[str, AudioDeviceInfo] = {}
        for device in devices:
            unique.setdefault(device.id, device)
        logger.debug("%s returned %d devices", command, len(unique))
        return list(unique.values())

    def apply_live(self, devices: Sequence[AudioDeviceInfo]) -> DeviceChange:
        """Store ``devices`` as last-known state and notify listeners of changes."""

        before = {device.id for device in self._devices}
        self._devices = list(devices)
        self._loaded = True
        after = {device.id for device in self._devices}
        change = DeviceChange(added=sorted(after - before), removed=sorted(before - after))
        if not change.is_empty:
            logger.info("device set changed: added=%s removed=%s", change.added, change.removed)
            for callback in self._listeners:
                callback(change)
        return change

    def diff(
        self,
        configured: Iterable[ConfiguredDevice],
        live: Sequence[AudioDeviceInfo] | None = None,
    ) -> List[DeviceEntry]:
        """Tag each configured device by its presence in ``live`` enumeration."""

        index: Dict[str, AudioDeviceInfo] = {
            device.id: device for device in (self._devices if live is None else live)
        }
        entries: List[DeviceEntry] = []
        for record in configured:
            device = index.get(record.device_identifier)
            if device is not None:
                entries.append(Available(device))
            else:
                entries.append(
                    ConfiguredButUnavailable(record.device_identifier, record.device_name)
                )
        return entries

    def ensure_selectable(self, identifier: str) -> AudioDeviceInfo:
        """Return the live device or raise :class:`ValidationError` if it is missing."""

        device = self.find(identifier)
        if device is None:
            raise ValidationError(f"Device {identifier!r} is not currently available")
        return device


__all__ = [
    "Available",
    "ConfiguredButUnavailable",
    "DeviceEntry",
    "DeviceChange",
    "DeviceRegistry",
]
