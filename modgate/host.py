"""Contracts for the game host the blacklist engine plugs into.

The host owns networking, chat and the workshop metadata service.  The
engine only talks to it through these three narrow interfaces, so any
object with matching methods can be passed in.
"""

from __future__ import annotations

from typing import Iterable, Protocol


class NetworkLayer(Protocol):
    """Connection authority for the running server."""

    def is_server(self) -> bool:
        """True while this process is the authoritative server."""
        ...

    def is_connected(self, client_id: int) -> bool:
        ...

    def disconnect_client(self, client_id: int) -> None:
        ...


class ChatSink(Protocol):
    """Broadcasts system messages to every player.  Best effort."""

    def send_system_message(self, message: str) -> None:
        ...


class MetadataProvider(Protocol):
    """Workshop lookup.

    Results arrive later as item-details events, one per resolved id, in
    any order, possibly never.
    """

    def request_item_details(self, mod_ids: Iterable[int]) -> None:
        ...
