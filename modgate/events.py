"""In-process event bus and the inbound event payloads.

Hosts publish plain dicts; the engine validates them with the pydantic
models below at the boundary and drops anything malformed.  Subscribing
returns a :class:`Subscription` handle which must be closed (directly or
via ``with``) to unregister.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt

logger = logging.getLogger(__name__)

ITEM_DETAILS_EVENT = "item_details"
PLAYER_CONNECT_EVENT = "player_connect"
PLAYER_DISCONNECT_EVENT = "player_disconnect"

Handler = Callable[[dict[str, Any]], None]


# ---------------------------------------------------------------------------
# Payload models
# ---------------------------------------------------------------------------


class ConnectEvent(BaseModel):
    """A player announced its profile and enabled mods."""

    client_id: NonNegativeInt
    external_id: NonNegativeInt = 0
    username: str
    mod_ids: list[NonNegativeInt] = Field(default_factory=list)


class MetadataEvent(BaseModel):
    """Workshop details for one mod id."""

    model_config = ConfigDict(populate_by_name=True)

    mod_id: NonNegativeInt = Field(alias="id")
    title: str
    description: str = ""
    preview_url: str = Field(default="", alias="previewUrl")


class DisconnectEvent(BaseModel):
    client_id: NonNegativeInt


# ---------------------------------------------------------------------------
# Bus
# ---------------------------------------------------------------------------


class Subscription:
    """Handle returned by :meth:`EventBus.subscribe`.  Closing is idempotent."""

    def __init__(self, bus: EventBus, event: str, handler: Handler) -> None:
        self._bus = bus
        self.event = event
        self.handler = handler
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def close(self) -> None:
        if self._active:
            self._bus._remove(self.event, self.handler)
            self._active = False

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class EventBus:
    """Synchronous publish/subscribe keyed by event name."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, event: str, handler: Handler) -> Subscription:
        self._handlers[event].append(handler)
        return Subscription(self, event, handler)

    def _remove(self, event: str, handler: Handler) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            self._handlers.pop(event, None)

    def handler_count(self, event: str) -> int:
        return len(self._handlers.get(event, []))

    def publish(self, event: str, payload: dict[str, Any]) -> int:
        """Deliver ``payload`` to every handler of ``event``.  Returns the count."""
        handlers = list(self._handlers.get(event, []))
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception("Handler %r failed for event %s", handler, event)
        return len(handlers)
