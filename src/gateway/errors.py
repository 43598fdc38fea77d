"""Error taxonomy shared by every caller of the remote call gateway."""
from __future__ import annotations

from typing import Dict, Optional, Type


class GatewayError(Exception):
    """Base error for failed engine calls."""

    kind = "gateway"

    def __init__(self, message: str, *, command: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.command = command

    def __str__(self) -> str:
        if self.command:
            return f"{self.command}: {self.message}"
        return self.message


class TransportError(GatewayError):
    """Raised when the engine is unreachable, crashed, timed out or answered garbage."""

    kind = "transport"


class ValidationError(GatewayError):
    """Raised when the engine (or a local pre-check) rejects call arguments."""

    kind = "validation"


class StateConflictError(GatewayError):
    """Raised when an operation is invalid for the current state."""

    kind = "state_conflict"


ERROR_KINDS: Dict[str, Type[GatewayError]] = {
    TransportError.kind: TransportError,
    ValidationError.kind: ValidationError,
    StateConflictError.kind: StateConflictError,
}


def raise_engine_error(kind: str, message: str, *, command: Optional[str] = None) -> None:
    """Raise the taxonomy error matching a structured engine error ``kind``.

    Unknown kinds are treated as transport failures since the engine
    answered outside its contract.
    """

    error_cls = ERROR_KINDS.get(kind, TransportError)
    raise error_cls(message, command=command)


__all__ = [
    "GatewayError",
    "TransportError",
    "ValidationError",
    "StateConflictError",
    "ERROR_KINDS",
    "raise_engine_error",
]
