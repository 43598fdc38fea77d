"""Application audio capture: running apps exposed as mixer sources."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from domain.models import APPLICATION_SOURCE_PREFIX, ProcessInfo
from gateway.client import RemoteCallGateway

logger = logging.getLogger(__name__)


def application_source_id(pid: int) -> str:
    """Return the device identifier used for an application source."""

    return f"{APPLICATION_SOURCE_PREFIX}{pid}"


def parse_application_source(identifier: Optional[str]) -> Optional[int]:
    """Return the PID encoded in ``app-{pid}`` or ``None`` for hardware ids."""

    if not identifier or not identifier.startswith(APPLICATION_SOURCE_PREFIX):
        return None
    try:
        return int(identifier[len(APPLICATION_SOURCE_PREFIX) :])
    except ValueError:
        return None


@dataclass(frozen=True)
class ApplicationSource:
    """Selectable entry for a capturable application."""

    pid: int
    name: str
    is_known: bool
    is_playing: bool
    is_capturing: bool
    selectable: bool

    @property
    def identifier(self) -> str:
        return application_source_id(self.pid)

    @property
    def display_name(self) -> str:
        return f"App: {self.name}"


@dataclass(frozen=True)
class PermissionResult:
    granted: bool
    message: str


class ApplicationAudioManager:
    """Track capturable applications, permissions and active captures."""

    def __init__(self, gateway: RemoteCallGateway) -> None:
        self._gateway = gateway
        self._known: List[ProcessInfo] = []
        self._active: List[ProcessInfo] = []
        self._permissions_granted = False

    @property
    def known_applications(self) -> List[ProcessInfo]:
        return list(self._known)

    @property
    def active_captures(self) -> List[ProcessInfo]:
        return list(self._active)

    @property
    def permissions_granted(self) -> bool:
        return self._permissions_granted

    async def refresh_applications(self) -> List[ProcessInfo]:
        self._known = await self._gateway.call(
            "get_known_audio_applications", response_model=List[ProcessInfo]
        )
        return list(self._known)

    async def request_permissions(self) -> PermissionResult:
        """Ask the engine for capture permission; granted only if already granted."""

        message = await self._gateway.call("request_audio_capture_permissions", response_model=str)
        granted = "already granted" in message.lower()
        self._permissions_granted = granted
        if not granted:
            logger.warning("audio capture permissions not granted: %s", message)
        return PermissionResult(granted=granted, message=message)

    async def start_capture(self, pid: int) -> str:
        result = await self._gateway.call(
            "start_application_audio_capture", {"pid": pid}, response_model=str
        )
        await self.refresh_active_captures()
        return result

    async def stop_capture(self, pid: int) -> None:
        await self._gateway.call("stop_application_audio_capture", {"pid": pid})
        await self.refresh_active_captures()

    async def create_mixer_input(self, pid: int) -> str:
        """Start capturing ``pid`` and open it as a mixer input stream."""

        source = await self._gateway.call(
            "create_mixer_input_for_application", {"pid": pid}, response_model=str
        )
        await self.refresh_active_captures()
        return source

    async def refresh_active_captures(self) -> List[ProcessInfo]:
        self._active = await self._gateway.call(
            "get_active_audio_captures", response_model=List[ProcessInfo]
        )
        return list(self._active)

    async def stop_all_captures(self) -> None:
        await self._gateway.call("stop_all_audio_captures")
        self._active = []

    def application_sources(self) -> List[ApplicationSource]:
        """Return known applications as selectable mixer sources."""

        capturing = {process.pid for process in self._active}
        return [
            ApplicationSource(
                pid=process.pid,
                name=process.name,
                is_known=process.bundle_id is not None,
                is_playing=process.is_playing_audio,
                is_capturing=process.pid in capturing,
                selectable=self._permissions_granted,
            )
            for process in self._known
        ]


__all__ = [
    "ApplicationAudioManager",
    "ApplicationSource",
    "PermissionResult",
    "application_source_id",
    "parse_application_source",
]
