"""Last-known status of subsystems adjacent to the mixer (streaming, recording)."""
from __future__ import annotations

import logging
from typing import Callable, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel

from domain.models import RecordingStatus, StreamingStatus
from domain.settings import ConsoleSettings
from gateway.client import RemoteCallGateway

from .poller import Poller

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=BaseModel)


class StatusMonitor(Generic[S]):
    """Poll one status command and keep its last successful answer."""

    def __init__(
        self,
        gateway: RemoteCallGateway,
        command: str,
        model: Type[S],
        *,
        interval: float,
        ready: Callable[[], bool] | None = None,
    ) -> None:
        self._gateway = gateway
        self._command = command
        self._model = model
        self._status: Optional[S] = None
        self._listeners: List[Callable[[S], None]] = []
        self.poller: Poller[S] = Poller(command, self._fetch, self._store, interval=interval, ready=ready)

    @property
    def status(self) -> Optional[S]:
        return None if self._status is None else self._status.model_copy()

    def add_listener(self, callback: Callable[[S], None]) -> None:
        """Register a function invoked whenever the status changes."""

        self._listeners.append(callback)

    def start(self) -> None:
        self.poller.start()

    def stop(self) -> None:
        self.poller.stop()

    async def refresh(self) -> S:
        """Fetch once outside the polling cadence; errors propagate to the caller."""

        status = await self._fetch()
        self._store(status)
        return status

    async def _fetch(self) -> S:
        return await self._gateway.call(self._command, response_model=self._model)

    def _store(self, status: S) -> None:
        if status == self._status:
            return
        self._status = status
        for callback in self._listeners:
            callback(status)


def streaming_status_monitor(
    gateway: RemoteCallGateway, settings: ConsoleSettings | None = None
) -> StatusMonitor[StreamingStatus]:
    settings = settings or ConsoleSettings()
    return StatusMonitor(
        gateway,
        "get_icecast_streaming_status",
        StreamingStatus,
        interval=settings.streaming_status_interval,
    )


def recording_status_monitor(
    gateway: RemoteCallGateway, settings: ConsoleSettings | None = None
) -> StatusMonitor[RecordingStatus]:
    settings = settings or ConsoleSettings()
    return StatusMonitor(
        gateway,
        "get_recording_status",
        RecordingStatus,
        interval=settings.recording_status_interval,
    )


__all__ = ["StatusMonitor", "streaming_status_monitor", "recording_status_monitor"]
