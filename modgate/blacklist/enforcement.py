"""Enforcement — notice, grace delay, disconnect.

``enforce`` consumes the client's verdict immediately, so a second trigger
for the same verdict finds nothing and is a logged no-op.  A fresh verdict
for a client whose kick is already queued is consumed without touching the
queued kick or repeating the notice.  The disconnect
itself runs later from the action queue, after the grace delay has given
players a chance to read the notice.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from modgate.blacklist.actions import DeferredActionQueue
from modgate.blacklist.messages import format_kick_notice
from modgate.blacklist.metadata import MetadataCache
from modgate.blacklist.models import Verdict
from modgate.blacklist.verdicts import VerdictTracker
from modgate.config import ConfigStore
from modgate.host import ChatSink, NetworkLayer

logger = logging.getLogger(__name__)


class EnforcementScheduler:
    def __init__(
        self,
        config: ConfigStore,
        verdicts: VerdictTracker,
        cache: MetadataCache,
        actions: DeferredActionQueue,
        network: NetworkLayer,
        chat: Optional[ChatSink] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._verdicts = verdicts
        self._cache = cache
        self._actions = actions
        self._network = network
        self._chat = chat
        self._clock = clock

    def enforce(self, client_id: int, now: Optional[float] = None) -> bool:
        """Announce and schedule the kick for ``client_id``.  Returns False if not flagged."""
        verdict = self._verdicts.get(client_id)
        if verdict is None:
            logger.warning("Attempted to kick non-blacklisted player %d", client_id)
            return False

        if self._actions.is_scheduled(client_id):
            # the queued deadline stands
            self._verdicts.clear(client_id)
            logger.debug("Kick of %s already scheduled, ignoring repeat", verdict.username)
            return False

        cfg = self._config.current
        if cfg.broadcast_kicks:
            self._broadcast(verdict)

        self._verdicts.clear(client_id)

        now = self._clock() if now is None else now
        self._actions.schedule(
            client_id,
            now + cfg.enforcement_delay,
            lambda: self._disconnect(client_id, verdict.username),
            description=f"kick {verdict.username}",
        )
        logger.info(
            "Scheduled kick of %s (client %d) in %.1fs",
            verdict.username, client_id, cfg.enforcement_delay,
        )
        return True

    def is_scheduled(self, client_id: int) -> bool:
        return self._actions.is_scheduled(client_id)

    def cancel(self, client_id: int) -> bool:
        """Drop a pending kick, e.g. because the player already left."""
        cancelled = self._actions.cancel(client_id)
        if cancelled:
            logger.debug("Cancelled scheduled kick for client %d", client_id)
        return cancelled

    def _broadcast(self, verdict: Verdict) -> None:
        if self._chat is None:
            logger.error("Failed to broadcast kick message: no chat available")
            return
        try:
            self._chat.send_system_message(
                format_kick_notice(verdict, self._cache.resolve_or_id)
            )
        except Exception as e:
            logger.error("Failed to broadcast kick message: %s", e)

    def _disconnect(self, client_id: int, username: str) -> None:
        try:
            if not self._network.is_server():
                logger.error("Cannot kick player - network layer not available or not server")
                return
            if not self._network.is_connected(client_id):
                logger.info("Skipping kick of %s, client %d already disconnected", username, client_id)
                return
            self._network.disconnect_client(client_id)
            logger.info("Successfully kicked %s", username)
        except Exception as e:
            logger.error("Failed to kick player %s: %s", username, e)
