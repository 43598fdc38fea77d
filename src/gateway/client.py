"""Typed async request/response wrapper around named engine commands.

:class:`RemoteCallGateway` is the sole boundary between the control
plane and the out-of-process engine.  Transports only need to implement
:class:`EngineTransport`; the gateway adds a bounded timeout, normalises
every failure into the :mod:`gateway.errors` taxonomy and optionally
validates responses against pydantic models.  Calls are never retried.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Deque, Dict, List, Mapping, Optional, Protocol, Tuple

from pydantic import TypeAdapter
from pydantic import ValidationError as ModelValidationError

from domain.settings import ConsoleSettings

from .errors import GatewayError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_HISTORY_SIZE = 256


class EngineTransport(Protocol):
    """Minimal interface implemented by IPC bridges and in-memory engines."""

    async def invoke(self, command: str, args: Mapping[str, Any]) -> Any:
        """Execute ``command`` with ``args`` and return the decoded response."""


class RemoteCallGateway:
    """Issue engine commands and surface failures as :class:`GatewayError`."""

    def __init__(
        self,
        transport: EngineTransport,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        history_size: int = DEFAULT_HISTORY_SIZE,
    ) -> None:
        if timeout <= 0.0:
            raise ValueError("timeout must be positive")
        if history_size < 0:
            raise ValueError("history_size must not be negative")
        self._transport = transport
        self._timeout = float(timeout)
        self._adapters: Dict[Any, TypeAdapter] = {}
        self._history: Deque[Tuple[str, Dict[str, Any]]] = deque(maxlen=history_size)

    @classmethod
    def from_settings(
        cls, transport: EngineTransport, settings: ConsoleSettings | None = None
    ) -> "RemoteCallGateway":
        """Create a gateway whose timeout follows ``settings.rpc_timeout_seconds``."""

        settings = settings or ConsoleSettings.from_environment()
        return cls(transport, timeout=settings.rpc_timeout_seconds)

    @property
    def transport(self) -> EngineTransport:
        return self._transport

    @property
    def timeout(self) -> float:
        return self._timeout

    def command_history(self) -> List[Tuple[str, Dict[str, Any]]]:
        """Return the most recent commands issued through this gateway, oldest first."""

        return list(self._history)

    async def call(
        self,
        command: str,
        args: Mapping[str, Any] | None = None,
        *,
        response_model: Any = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Invoke ``command`` and return its (optionally validated) response.

        ``response_model`` may be any type pydantic understands, e.g. a
        model class or ``List[Model]``.  Raises :class:`TransportError` on
        timeout, transport failure or a response that does not match the
        model; engine-reported validation and state conflicts propagate as
        their own taxonomy classes.
        """

        payload: Dict[str, Any] = dict(args or {})
        limit = self._timeout if timeout is None else float(timeout)
        self._history.append((command, payload))
        logger.debug("engine call %s args=%s", command, payload)
        try:
            raw = await asyncio.wait_for(self._transport.invoke(command, payload), limit)
        except GatewayError as exc:
            if exc.command is None:
                exc.command = command
            logger.debug("engine call %s failed: %s", command, exc)
            raise
        except asyncio.TimeoutError as exc:
            logger.warning("engine call %s timed out after %.2fs", command, limit)
            raise TransportError(f"no response within {limit:.2f}s", command=command) from exc
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("engine call %s failed in transport: %s", command, exc)
            raise TransportError(str(exc) or type(exc).__name__, command=command) from exc

        if response_model is None:
            return raw
        return self._validate(command, raw, response_model)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _validate(self, command: str, raw: Any, response_model: Any) -> Any:
        adapter = self._adapters.get(response_model)
        if adapter is None:
            adapter = TypeAdapter(response_model)
            self._adapters[response_model] = adapter
        try:
            return adapter.validate_python(raw)
        except ModelValidationError as exc:
            raise TransportError(f"malformed response: {exc}", command=command) from exc


__all__ = ["EngineTransport", "RemoteCallGateway", "DEFAULT_TIMEOUT_SECONDS", "DEFAULT_HISTORY_SIZE"]
