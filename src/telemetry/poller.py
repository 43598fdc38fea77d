"""Fixed-cadence polling loop with an explicit state machine.

A :class:`Poller` drives one resource (meter levels, engine metrics,
streaming status, ...) at its own cadence.  It never starts a fetch
while the previous one for the same resource is still in flight.  A
response that resolves after :meth:`Poller.suspend` is discarded instead
of applied; :meth:`Poller.stop` cancels the fetch outright.  Fetch
failures are logged and swallowed so the last known value stays on
screen.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PollerState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    SUSPENDED = "suspended"


class Poller(Generic[T]):
    """Poll ``fetch`` every ``interval`` seconds and hand results to ``apply``."""

    def __init__(
        self,
        name: str,
        fetch: Callable[[], Awaitable[T]],
        apply: Callable[[T], Any],
        *,
        interval: float,
        ready: Callable[[], bool] | None = None,
    ) -> None:
        if interval <= 0.0:
            raise ValueError("interval must be positive")
        self._name = name
        self._fetch = fetch
        self._apply = apply
        self._interval = float(interval)
        self._ready = ready or (lambda: True)
        self._state = PollerState.IDLE
        self._timer: Optional[asyncio.Task] = None
        self._in_flight: Optional[asyncio.Task] = None
        self._generation = 0
        self._last_value: Optional[T] = None
        self.tick_count = 0
        self.skipped_ticks = 0
        self.failure_count = 0
        self.discarded_count = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    @property
    def last_value(self) -> Optional[T]:
        """Most recent successfully applied value."""

        return self._last_value

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> PollerState:
        """Leave ``IDLE``; poll immediately if the resource reports ready."""

        if self._state is not PollerState.IDLE:
            return self._state
        if self._ready():
            self._enter_polling()
        else:
            self._state = PollerState.SUSPENDED
            logger.debug("poller %s waiting for resource to become ready", self._name)
        return self._state

    def suspend(self) -> None:
        """Stop ticking; no tick fires and no late response is applied afterwards."""

        if self._state is PollerState.POLLING:
            self._cancel_timer()
            self._generation += 1
            self._state = PollerState.SUSPENDED
            logger.debug("poller %s suspended", self._name)

    def resume(self) -> None:
        if self._state is PollerState.SUSPENDED:
            self._enter_polling()

    def set_ready(self, ready: bool) -> None:
        """Follow the polled subsystem's readiness (e.g. connected/disconnected)."""

        if ready:
            self.resume()
        else:
            self.suspend()

    def stop(self) -> None:
        """Return to ``IDLE``, cancelling any fetch in flight; repeat calls are harmless."""

        if self._state is PollerState.IDLE:
            return
        self._cancel_timer()
        if self.busy:
            self._in_flight.cancel()
            self.discarded_count += 1
        self._generation += 1
        self._state = PollerState.IDLE
        logger.debug("poller %s stopped", self._name)

    # ------------------------------------------------------------------
    # Ticking
    # ------------------------------------------------------------------
    def tick(self) -> bool:
        """Start one fetch unless the previous one is still in flight.

        Returns ``True`` when a fetch was started.  Exposed so tests and
        manual refresh buttons can drive the poller without waiting.
        """

        if self._state is not PollerState.POLLING:
            return False
        if self.busy:
            self.skipped_ticks += 1
            logger.debug("poller %s skipped tick; previous fetch still in flight", self._name)
            return False
        self.tick_count += 1
        self._in_flight = asyncio.ensure_future(self._run_fetch(self._generation))
        return True

    async def wait_idle(self) -> None:
        """Wait for the fetch currently in flight, if any."""

        task = self._in_flight
        if task is not None and not task.done():
            await asyncio.wait({task})

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _enter_polling(self) -> None:
        self._state = PollerState.POLLING
        self._timer = asyncio.ensure_future(self._loop(self._generation))
        logger.debug("poller %s polling every %.3fs", self._name, self._interval)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _loop(self, generation: int) -> None:
        while self._state is PollerState.POLLING and generation == self._generation:
            self.tick()
            await asyncio.sleep(self._interval)

    async def _run_fetch(self, generation: int) -> None:
        try:
            value = await self._fetch()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.failure_count += 1
            logger.warning("poller %s fetch failed; keeping last value: %s", self._name, exc)
            return
        if generation != self._generation or self._state is not PollerState.POLLING:
            self.discarded_count += 1
            logger.debug("poller %s discarded a late response", self._name)
            return
        try:
            self._apply(value)
        except Exception:
            self.failure_count += 1
            logger.exception("poller %s failed to apply a response", self._name)
            return
        self._last_value = value


__all__ = ["Poller", "PollerState"]
