"""Remote call gateway: the single boundary to the audio engine process."""
from .client import DEFAULT_TIMEOUT_SECONDS, EngineTransport, RemoteCallGateway
from .errors import (
    ERROR_KINDS,
    GatewayError,
    StateConflictError,
    TransportError,
    ValidationError,
    raise_engine_error,
)
from .memory import InMemoryEngine

__all__ = [
    "DEFAULT_TIMEOUT_SECONDS",
    "EngineTransport",
    "RemoteCallGateway",
    "ERROR_KINDS",
    "GatewayError",
    "TransportError",
    "ValidationError",
    "StateConflictError",
    "raise_engine_error",
    "InMemoryEngine",
]
