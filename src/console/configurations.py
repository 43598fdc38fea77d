"""Reusable and session mixer configurations.

The store mirrors the engine's configuration records: a list of reusable
presets and at most one active session (the working copy the mixer is
currently bound to).  Installing a session always marks every other
known session inactive, so the single-active-session invariant holds on
the client regardless of the order in which responses arrive.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from domain.models import (
    DESCRIPTION_MAX_LENGTH,
    CompleteConfiguration,
    ConfiguredDevice,
    MixerConfiguration,
)
from gateway.client import RemoteCallGateway
from gateway.errors import GatewayError, StateConflictError, ValidationError

logger = logging.getLogger(__name__)

ConfigurationListener = Callable[[Optional[int], Optional[int]], None]
TeardownHook = Callable[[MixerConfiguration], Awaitable[None]]


class ConfigurationStore:
    """Client-side view of reusable presets and the active session."""

    def __init__(self, gateway: RemoteCallGateway) -> None:
        self._gateway = gateway
        self._reusable: List[MixerConfiguration] = []
        self._active: Optional[CompleteConfiguration] = None
        self._sessions: Dict[int, MixerConfiguration] = {}
        self._listeners: List[ConfigurationListener] = []
        self._teardown_hooks: List[Tuple[TeardownHook, Optional[TeardownHook]]] = []
        self._generation = 0
        self._loaded = False

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------
    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def reusable_configurations(self) -> List[MixerConfiguration]:
        return [configuration.model_copy(deep=True) for configuration in self._reusable]

    @property
    def active_session(self) -> Optional[MixerConfiguration]:
        if self._active is None:
            return None
        return self._active.configuration.model_copy(deep=True)

    @property
    def active_configuration(self) -> Optional[CompleteConfiguration]:
        """Return the active session with its devices and effect records."""

        if self._active is None:
            return None
        return self._active.model_copy(deep=True)

    @property
    def active_configuration_id(self) -> Optional[int]:
        return None if self._active is None else self._active.configuration.id

    @property
    def configured_devices(self) -> List[ConfiguredDevice]:
        if self._active is None:
            return []
        return [record.model_copy(deep=True) for record in self._active.configured_devices]

    @property
    def sessions(self) -> List[MixerConfiguration]:
        """Every session this store has observed, active or not."""

        return [session.model_copy(deep=True) for session in self._sessions.values()]

    def add_listener(self, callback: ConfigurationListener) -> None:
        """Register ``callback(previous_id, current_id)`` for active-id changes."""

        self._listeners.append(callback)

    def add_teardown_hook(self, hook: TeardownHook, restore: Optional[TeardownHook] = None) -> None:
        """Register a coroutine awaited before the active session is replaced.

        ``restore`` is awaited with the same session if the replacement
        could not be created, so the hook's side effects can be undone.
        """

        self._teardown_hooks.append((hook, restore))

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    async def load_configurations(self) -> None:
        """Fetch presets and the active session as one unit.

        If either call fails the store keeps its previous contents and the
        error propagates.  A load overtaken by a later load or selection is
        discarded.
        """

        self._generation += 1
        token = self._generation
        reusable, active = await asyncio.gather(
            self._gateway.call(
                "get_reusable_configurations", response_model=List[MixerConfiguration]
            ),
            self._gateway.call(
                "get_active_session_configuration",
                response_model=Optional[CompleteConfiguration],
            ),
        )
        if token != self._generation:
            logger.debug("discarding superseded configuration load %d", token)
            return
        self._reusable = list(reusable)
        self._loaded = True
        self._install_active(active)

    async def select_configuration(
        self, reusable_id: int, session_name: Optional[str] = None
    ) -> MixerConfiguration:
        """Create and activate a session cloned from ``reusable_id``.

        If the engine cannot create the session the previous one stays
        active, its teardown is undone and the error propagates.
        """

        previous = self._active
        torn_down: List[Optional[TeardownHook]] = []
        if previous is not None:
            for hook, restore in self._teardown_hooks:
                await hook(previous.configuration)
                torn_down.append(restore)
        args: Dict[str, object] = {"reusableId": reusable_id}
        if session_name:
            args["sessionName"] = session_name
        self._generation += 1
        try:
            complete = await self._gateway.call(
                "create_session_from_reusable", args, response_model=CompleteConfiguration
            )
        except GatewayError as exc:
            if previous is not None:
                logger.error(
                    "could not create session from reusable configuration %s; "
                    "restoring session %s: %s",
                    reusable_id,
                    previous.configuration.id,
                    exc,
                )
                for restore in reversed(torn_down):
                    if restore is not None:
                        await restore(previous.configuration)
            raise
        self._install_active(complete)
        logger.info(
            "activated session %s from reusable configuration %s",
            complete.configuration.id,
            reusable_id,
        )
        return complete.configuration.model_copy(deep=True)

    async def save_session_as_new_reusable(
        self, name: str, description: Optional[str] = None
    ) -> MixerConfiguration:
        """Clone the active session into a new preset and re-link the session to it."""

        command = "save_session_as_new_reusable"
        trimmed = (name or "").strip()
        if not trimmed:
            raise ValidationError("Configuration name must not be empty", command=command)
        if description is not None and len(description) > DESCRIPTION_MAX_LENGTH:
            raise ValidationError(
                f"Description must be at most {DESCRIPTION_MAX_LENGTH} characters",
                command=command,
            )
        if self._active is None:
            raise StateConflictError("No active session found", command=command)
        session_id = self._active.configuration.id
        created = await self._gateway.call(
            command,
            {"name": trimmed, "description": description},
            response_model=MixerConfiguration,
        )
        self._upsert_reusable(created)
        active = self._active
        if active is not None and active.configuration.id == session_id:
            relinked = active.configuration.model_copy(
                update={"reusable_configuration_id": created.id}
            )
            self._active = active.model_copy(update={"configuration": relinked})
            self._sessions[relinked.id] = relinked
        return created.model_copy(deep=True)

    async def save_session_to_reusable(self) -> MixerConfiguration:
        """Overwrite the linked preset with the active session's state."""

        command = "save_session_to_reusable"
        if self._active is None:
            raise StateConflictError("No active session found", command=command)
        if self._active.configuration.reusable_configuration_id is None:
            raise StateConflictError(
                "Active session is not linked to a reusable configuration", command=command
            )
        updated = await self._gateway.call(command, response_model=MixerConfiguration)
        self._upsert_reusable(updated)
        return updated.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _install_active(self, complete: Optional[CompleteConfiguration]) -> None:
        previous_id = self.active_configuration_id
        new_id = None if complete is None else complete.configuration.id
        for identifier, session in list(self._sessions.items()):
            if session.session_active and identifier != new_id:
                self._sessions[identifier] = session.model_copy(update={"session_active": False})
        if complete is not None:
            self._sessions[complete.configuration.id] = complete.configuration
        self._active = complete
        if previous_id != new_id:
            for callback in self._listeners:
                callback(previous_id, new_id)

    def _upsert_reusable(self, configuration: MixerConfiguration) -> None:
        for index, existing in enumerate(self._reusable):
            if existing.id == configuration.id:
                self._reusable[index] = configuration
                return
        self._reusable.append(configuration)


__all__ = ["ConfigurationStore", "ConfigurationListener", "TeardownHook"]
