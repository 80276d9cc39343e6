"""Scripted replay of host events against a real engine.

A script is a YAML mapping::

    config:                      # overrides applied on top of the defaults
      blacklisted_mod_ids: [3000000111]
    catalog:                     # what the workshop answers, and how fast
      3000000111: {title: Aimbot, delay: 1.0}
      3000000222: {title: Hats}  # default delay 0.5; omit an id to never answer
    events:
      - {at: 0, connect: {client_id: 1, username: alice, mod_ids: [3000000111]}}
      - {at: 2, team: {client_id: 1, team: RED}}
    until: 10                    # optional, defaults to 5s after the last event
    tick: 0.5

The runner advances a simulated clock in ``tick`` steps, publishing
scripted events, delivering workshop answers when due and calling the
manager's periodic update.  Everything observable ends up in the timeline.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Optional

import yaml

from modgate.blacklist.manager import BlacklistManager
from modgate.blacklist.models import Team
from modgate.config import BlacklistConfig, ConfigError, ConfigStore
from modgate.events import (
    ITEM_DETAILS_EVENT,
    PLAYER_DISCONNECT_EVENT,
    EventBus,
)

logger = logging.getLogger(__name__)

DEFAULT_DETAILS_DELAY = 0.5
EVENT_KINDS = ("connect", "team", "disconnect", "item_details")


class ScriptError(ValueError):
    """Raised for scripts that cannot be replayed."""


@dataclass
class TimelineEntry:
    at: float
    kind: str  # "chat" | "kick" | "team" | "admission" | "request" | "details"
    detail: str


@dataclass
class SimulationResult:
    timeline: list[TimelineEntry] = field(default_factory=list)
    kicked: list[int] = field(default_factory=list)
    flagged: list[int] = field(default_factory=list)

    def entries(self, kind: str) -> list[TimelineEntry]:
        return [e for e in self.timeline if e.kind == kind]


class SimClock:
    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now


class RecordingHost:
    """Network, chat and workshop stand-in that writes everything to a timeline."""

    def __init__(self, clock: SimClock, catalog: Optional[dict[int, dict[str, Any]]] = None) -> None:
        self._clock = clock
        self._catalog = catalog or {}
        self.server = True
        self.connected: set[int] = set()
        self.timeline: list[TimelineEntry] = []
        self.kicked: list[int] = []
        self._deliveries: list[tuple[float, dict[str, Any]]] = []
        self._departures: list[int] = []

    def _record(self, kind: str, detail: str) -> None:
        self.timeline.append(TimelineEntry(self._clock.now, kind, detail))

    # NetworkLayer
    def is_server(self) -> bool:
        return self.server

    def is_connected(self, client_id: int) -> bool:
        return client_id in self.connected

    def disconnect_client(self, client_id: int) -> None:
        self.connected.discard(client_id)
        self.kicked.append(client_id)
        self._departures.append(client_id)
        self._record("kick", f"client {client_id}")

    # ChatSink
    def send_system_message(self, message: str) -> None:
        self._record("chat", message)

    # MetadataProvider
    def request_item_details(self, mod_ids: Iterable[int]) -> None:
        mod_ids = list(mod_ids)
        self._record("request", ", ".join(str(m) for m in mod_ids))
        for mod_id in mod_ids:
            entry = self._catalog.get(mod_id)
            if entry is None:
                continue
            delay = float(entry.get("delay", DEFAULT_DETAILS_DELAY))
            payload = {
                "id": mod_id,
                "title": entry.get("title", str(mod_id)),
                "description": entry.get("description", ""),
                "previewUrl": entry.get("preview_url", ""),
            }
            self._deliveries.append((self._clock.now + delay, payload))

    def due_deliveries(self, now: float) -> list[dict[str, Any]]:
        due = [p for t, p in self._deliveries if t <= now]
        self._deliveries = [(t, p) for t, p in self._deliveries if t > now]
        return due

    def take_departures(self) -> list[int]:
        departures, self._departures = self._departures, []
        return departures


def load_script(path: str | Path) -> dict[str, Any]:
    with open(path) as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ScriptError("Script must be a YAML mapping")
    return data


def _parse_events(raw: Any) -> list[tuple[float, str, dict[str, Any]]]:
    if not isinstance(raw, list):
        raise ScriptError("'events' must be a list")
    events = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict) or "at" not in item:
            raise ScriptError(f"Event #{i} needs an 'at' time")
        kinds = [k for k in EVENT_KINDS if k in item]
        if len(kinds) != 1:
            raise ScriptError(f"Event #{i} must have exactly one of {', '.join(EVENT_KINDS)}")
        events.append((float(item["at"]), kinds[0], item[kinds[0]] or {}))
    # stable: events at the same time keep script order
    return sorted(events, key=lambda e: e[0])


def _parse_team(value: Any) -> Team | int:
    if isinstance(value, str):
        try:
            return Team[value.upper()]
        except KeyError:
            raise ScriptError(f"Unknown team {value!r}") from None
    return value


def run_script(data: dict[str, Any]) -> SimulationResult:
    """Replay a parsed script and return what the host observed."""
    try:
        config = BlacklistConfig.from_dict(data.get("config") or {})
    except ConfigError as e:
        raise ScriptError(f"Invalid config: {e}") from e

    catalog = {int(k): (v or {}) for k, v in (data.get("catalog") or {}).items()}
    events = _parse_events(data.get("events") or [])
    tick = float(data.get("tick", 0.5))
    if tick <= 0:
        raise ScriptError("'tick' must be positive")
    last_at = events[-1][0] if events else 0.0
    until = float(data.get("until", last_at + 5.0))

    clock = SimClock()
    host = RecordingHost(clock, catalog)
    bus = EventBus()
    manager = BlacklistManager(ConfigStore.in_memory(config), host, host, host, clock)

    pending = list(events)
    with manager.start(bus):
        while True:
            while pending and pending[0][0] <= clock.now:
                _, kind, body = pending.pop(0)
                _dispatch(manager, bus, host, clock.now, kind, body)

            for payload in host.due_deliveries(clock.now):
                host.timeline.append(TimelineEntry(clock.now, "details", f"{payload['id']}: {payload['title']}"))
                bus.publish(ITEM_DETAILS_EVENT, payload)

            manager.update(clock.now)

            for client_id in host.take_departures():
                bus.publish(PLAYER_DISCONNECT_EVENT, {"client_id": client_id})

            if clock.now >= until and not pending:
                break
            clock.now = round(clock.now + tick, 6)

        flagged = [v.client_id for v in manager.verdicts.flagged()]

    return SimulationResult(timeline=host.timeline, kicked=host.kicked, flagged=flagged)


def _dispatch(
    manager: BlacklistManager,
    bus: EventBus,
    host: RecordingHost,
    now: float,
    kind: str,
    body: dict[str, Any],
) -> None:
    if kind == "connect":
        client_id = body.get("client_id")
        if isinstance(client_id, int):
            host.connected.add(client_id)
        result = manager.handle_connect(body)
        host.timeline.append(
            TimelineEntry(now, "admission", f"client {client_id}: {result.value if result else 'dropped'}")
        )
    elif kind == "team":
        client_id = body.get("client_id")
        team = _parse_team(body.get("team", Team.SPECTATOR))
        allowed = manager.on_team_change(client_id, team)
        label = team.name if isinstance(team, Team) else str(team)
        host.timeline.append(
            TimelineEntry(now, "team", f"client {client_id} -> {label}: {'allowed' if allowed else 'denied'}")
        )
    elif kind == "disconnect":
        client_id = body.get("client_id")
        host.connected.discard(client_id)
        bus.publish(PLAYER_DISCONNECT_EVENT, body)
    elif kind == "item_details":
        bus.publish(ITEM_DETAILS_EVENT, body)
