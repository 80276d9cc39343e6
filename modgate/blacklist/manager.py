"""Blacklist manager — wires the engine to a host.

Owns one instance of every service (metadata cache, trackers, action queue,
enforcement, gate) and exposes the host-facing handlers.  Event payloads
are validated here; malformed ones are logged and dropped before they can
touch any state.

Typical host loop::

    manager = BlacklistManager(ConfigStore(path), network, chat, provider)
    manager.config.load()
    with manager.start(bus):
        while running:
            manager.update()
"""

from __future__ import annotations

import logging
import time
from contextlib import ExitStack
from typing import Any, Callable, Optional

from pydantic import ValidationError

from modgate.blacklist.actions import DeferredActionQueue
from modgate.blacklist.enforcement import EnforcementScheduler
from modgate.blacklist.gate import AdmissionGate
from modgate.blacklist.metadata import MetadataCache
from modgate.blacklist.models import Admission, ModDescriptor, Team
from modgate.blacklist.verdicts import VerdictTracker
from modgate.config import ConfigStore
from modgate.events import (
    ITEM_DETAILS_EVENT,
    PLAYER_CONNECT_EVENT,
    PLAYER_DISCONNECT_EVENT,
    ConnectEvent,
    DisconnectEvent,
    EventBus,
    MetadataEvent,
)
from modgate.host import ChatSink, MetadataProvider, NetworkLayer

logger = logging.getLogger(__name__)


class BlacklistManager:
    def __init__(
        self,
        config: ConfigStore,
        network: NetworkLayer,
        chat: Optional[ChatSink] = None,
        provider: Optional[MetadataProvider] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.network = network
        self.clock = clock
        self.cache = MetadataCache()
        self.verdicts = VerdictTracker()
        self.actions = DeferredActionQueue()
        self.enforcement = EnforcementScheduler(
            config, self.verdicts, self.cache, self.actions, network, chat, clock
        )
        self.gate = AdmissionGate(
            config, self.cache, self.verdicts, self.enforcement, provider, chat, clock
        )
        self._subscriptions: Optional[ExitStack] = None

    # -- lifecycle -----------------------------------------------------------

    def start(self, bus: EventBus) -> BlacklistManager:
        """Subscribe to the host's events.  Use as a context manager to auto-stop."""
        if self._subscriptions is not None:
            raise RuntimeError("Blacklist manager already started")
        with ExitStack() as stack:
            stack.enter_context(bus.subscribe(PLAYER_CONNECT_EVENT, self.handle_connect))
            stack.enter_context(bus.subscribe(ITEM_DETAILS_EVENT, self.handle_item_details))
            stack.enter_context(bus.subscribe(PLAYER_DISCONNECT_EVENT, self.handle_disconnect))
            self._subscriptions = stack.pop_all()

        logger.info("Blacklist system initialized.")
        blacklisted = self.config.current.blacklisted_mod_ids
        if blacklisted:
            logger.info("Blacklisted mods: %d", len(blacklisted))
        return self

    def shutdown(self) -> None:
        if self._subscriptions is not None:
            self._subscriptions.close()
            self._subscriptions = None
        self.gate.reset()
        self.verdicts.clear_all()
        self.actions.clear()
        logger.info("Blacklist system shut down.")

    @property
    def running(self) -> bool:
        return self._subscriptions is not None

    def __enter__(self) -> BlacklistManager:
        return self

    def __exit__(self, *exc: object) -> None:
        self.shutdown()

    def update(self, now: Optional[float] = None) -> None:
        """Periodic tick: hot-reload config, resolve timeouts, run due kicks."""
        now = self.clock() if now is None else now
        self.config.reload_if_changed()
        self.gate.tick(now)
        self.actions.run_due(now)

    # -- event handlers ------------------------------------------------------

    def handle_connect(self, payload: dict[str, Any]) -> Optional[Admission]:
        try:
            event = ConnectEvent.model_validate(payload)
        except ValidationError as e:
            logger.error("Dropping malformed connect event: %s", e)
            return None

        logger.info(
            "Enabled mods by %s: %s",
            event.username,
            f"{event.external_id}: {', '.join(str(m) for m in event.mod_ids)}"
            if event.mod_ids else "None",
        )
        if not self.network.is_server():
            return None

        try:
            return self.gate.admit_player(
                event.client_id, event.external_id, event.username, event.mod_ids
            )
        except Exception as e:
            logger.error("Error checking player mods for %s: %s", event.username, e)
            return None

    def handle_item_details(self, payload: dict[str, Any]) -> list[int]:
        try:
            event = MetadataEvent.model_validate(payload)
        except ValidationError as e:
            logger.error("Dropping malformed item details event: %s", e)
            return []

        descriptor = ModDescriptor(
            mod_id=event.mod_id,
            title=event.title,
            description=event.description,
            preview_url=event.preview_url,
        )
        try:
            return self.gate.on_metadata(descriptor)
        except Exception as e:
            logger.error("Error processing item details: %s", e)
            return []

    def handle_disconnect(self, payload: dict[str, Any]) -> None:
        try:
            event = DisconnectEvent.model_validate(payload)
        except ValidationError as e:
            logger.error("Dropping malformed disconnect event: %s", e)
            return
        self.gate.on_client_disconnected(event.client_id)

    def on_team_change(self, client_id: int, team: Team | int) -> bool:
        """Host hook for team change requests.  Returns False to block the change.

        Fails open: if anything goes wrong the change is allowed so a bug
        here never locks players out of the game.
        """
        if not self.network.is_server():
            return True
        try:
            return self.gate.guard_team_join(client_id, team)
        except Exception as e:
            logger.error("Error in team change guard: %s", e)
            return True

    def is_flagged(self, client_id: int) -> bool:
        return self.verdicts.is_flagged(client_id)
