"""Shared fakes and fixtures for the blacklist engine tests."""

import pytest

from modgate.blacklist.manager import BlacklistManager
from modgate.config import ConfigStore


class FakeClock:
    def __init__(self, now: float = 100.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class FakeHost:
    """Records everything the engine asks the host to do."""

    def __init__(self) -> None:
        self.server = True
        self.connected: set[int] = set()
        self.disconnects: list[int] = []
        self.messages: list[str] = []
        self.requests: list[list[int]] = []
        self.chat_error: Exception | None = None
        self.disconnect_error: Exception | None = None

    def is_server(self) -> bool:
        return self.server

    def is_connected(self, client_id: int) -> bool:
        return client_id in self.connected

    def disconnect_client(self, client_id: int) -> None:
        if self.disconnect_error is not None:
            raise self.disconnect_error
        self.connected.discard(client_id)
        self.disconnects.append(client_id)

    def send_system_message(self, message: str) -> None:
        if self.chat_error is not None:
            raise self.chat_error
        self.messages.append(message)

    def request_item_details(self, mod_ids) -> None:
        self.requests.append(list(mod_ids))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def host():
    return FakeHost()


@pytest.fixture
def make_manager(clock, host):
    """Build a manager over an in-memory config with the given overrides."""

    def _make(**overrides) -> BlacklistManager:
        store = ConfigStore.in_memory(**overrides)
        return BlacklistManager(store, host, host, host, clock)

    return _make
