"""End-to-end tests for the admission gate through the manager."""

import logging

import pytest

from modgate.blacklist import policy
from modgate.blacklist.models import Admission, Team

MOD_A = 3_000_000_111
MOD_B = 3_000_000_222
MOD_C = 3_000_000_333


def _connect(manager, host, client_id=1, mods=(), username="alice", external_id=76561198000000001):
    host.connected.add(client_id)
    return manager.handle_connect(
        {
            "client_id": client_id,
            "external_id": external_id,
            "username": username,
            "mod_ids": list(mods),
        }
    )


def _details(manager, mod_id, title):
    return manager.handle_item_details(
        {"id": mod_id, "title": title, "description": "", "previewUrl": ""}
    )


# --- Connect ---


def test_clean_player_gets_no_verdict(make_manager, host):
    manager = make_manager(blacklisted_mod_ids=[MOD_A], kick_players_with_local_mods=True)
    assert _connect(manager, host, mods=[MOD_B, MOD_C]) == Admission.ALLOWED
    assert not manager.is_flagged(1)
    assert len(manager.verdicts) == 0


def test_verdict_holds_exact_blacklist_intersection(make_manager, host):
    manager = make_manager(blacklisted_mod_ids=[MOD_A, MOD_C, 3_000_000_999])
    assert _connect(manager, host, mods=[MOD_A, MOD_B, MOD_C]) == Admission.FLAGGED

    verdict = manager.verdicts.get(1)
    assert set(verdict.blacklisted_mod_ids) == {MOD_A, MOD_C}
    assert not verdict.has_local_mod_violation
    assert verdict.username == "alice"


def test_flag_then_kick_on_team_join(make_manager, host, clock):
    manager = make_manager(blacklisted_mod_ids=[111], kick_on_team_join=True)

    assert _connect(manager, host, mods=[111, 222]) == Admission.FLAGGED
    assert manager.is_flagged(1)
    assert host.disconnects == []

    assert manager.on_team_change(1, Team.RED) is False
    assert not manager.is_flagged(1)
    assert manager.enforcement.is_scheduled(1)
    assert len(host.messages) == 1

    manager.update(clock.now + 3)
    manager.update(clock.now + 10)
    assert host.disconnects == [1]


def test_local_mod_violation_without_blacklist(make_manager, host):
    manager = make_manager(blacklisted_mod_ids=[], kick_players_with_local_mods=True)
    assert _connect(manager, host, mods=[1]) == Admission.FLAGGED

    verdict = manager.verdicts.get(1)
    assert verdict.has_local_mod_violation
    assert verdict.blacklisted_mod_ids == ()


def test_immediate_kick_when_team_join_rule_off(make_manager, host, clock):
    manager = make_manager(blacklisted_mod_ids=[111], kick_on_team_join=False)

    assert _connect(manager, host, mods=[111]) == Admission.ENFORCED
    assert not manager.is_flagged(1)
    assert manager.enforcement.is_scheduled(1)

    manager.update(clock.now + 3)
    assert host.disconnects == [1]
    assert len(host.messages) == 1


def test_disabled_allows_everyone(make_manager, host):
    manager = make_manager(enabled=False, blacklisted_mod_ids=[MOD_A], kick_players_with_local_mods=True)
    assert _connect(manager, host, mods=[1, MOD_A]) == Admission.ALLOWED
    assert not manager.is_flagged(1)
    assert host.requests == []
    assert 1 not in manager.gate.pending


def test_metadata_requested_for_unknown_workshop_mods_only(make_manager, host):
    manager = make_manager()
    _details(manager, MOD_C, "Known")

    _connect(manager, host, mods=[5, MOD_B, MOD_A, MOD_C])

    assert host.requests == [[MOD_A, MOD_B]]
    assert manager.gate.pending.get(1).awaiting == {MOD_A, MOD_B}


def test_no_request_when_everything_is_known_or_local(make_manager, host):
    manager = make_manager()
    _details(manager, MOD_A, "Known")
    _connect(manager, host, mods=[5, MOD_A])
    assert host.requests == []
    assert 1 not in manager.gate.pending


# --- Cooldown ---


def test_duplicate_connect_within_cooldown_is_skipped(make_manager, host, clock, monkeypatch):
    calls = []
    real_classify = policy.classify

    def counting_classify(mod_ids, config):
        calls.append(tuple(mod_ids))
        return real_classify(mod_ids, config)

    monkeypatch.setattr(policy, "classify", counting_classify)
    manager = make_manager(blacklisted_mod_ids=[111])

    assert _connect(manager, host, mods=[111]) == Admission.FLAGGED
    evaluated = len(calls)

    clock.advance(1.5)
    assert _connect(manager, host, mods=[111]) == Admission.SKIPPED
    assert len(calls) == evaluated

    clock.advance(0.5)
    assert _connect(manager, host, mods=[111]) == Admission.FLAGGED
    assert len(calls) > evaluated


def test_reconnect_with_clean_mods_clears_flag(make_manager, host, clock):
    manager = make_manager(blacklisted_mod_ids=[111])
    _connect(manager, host, mods=[111])
    assert manager.is_flagged(1)

    clock.advance(5)
    assert _connect(manager, host, mods=[222]) == Admission.ALLOWED
    assert not manager.is_flagged(1)


def test_cooldown_stamps_are_pruned(make_manager, host, clock):
    manager = make_manager()
    _connect(manager, host, mods=[])
    assert manager.gate.was_checked_recently(1)

    manager.update(clock.now + 10)
    assert manager.gate.was_checked_recently(1)
    manager.update(clock.now + 10.5)
    assert not manager.gate.was_checked_recently(1)


# --- Team join ---


@pytest.mark.parametrize("team", [Team.SPECTATOR, Team.NONE, 0, 1])
def test_spectator_and_none_always_allowed(make_manager, host, team):
    manager = make_manager(blacklisted_mod_ids=[111])
    _connect(manager, host, mods=[111])

    assert manager.on_team_change(1, team) is True
    assert manager.is_flagged(1)
    assert not manager.enforcement.is_scheduled(1)


@pytest.mark.parametrize("team", [Team.BLUE, Team.RED, 2, 3])
def test_active_team_denied_exactly_when_flagged(make_manager, host, team):
    manager = make_manager(blacklisted_mod_ids=[111])
    _connect(manager, host, client_id=1, mods=[111], username="cheater")
    _connect(manager, host, client_id=2, mods=[222], username="honest")

    assert manager.on_team_change(2, team) is True
    assert manager.on_team_change(1, team) is False
    # verdict consumed by the first denial
    assert manager.on_team_change(1, team) is True


def test_team_guard_fails_open(make_manager, host, caplog):
    manager = make_manager(blacklisted_mod_ids=[111])
    _connect(manager, host, mods=[111])

    with caplog.at_level(logging.ERROR):
        assert manager.on_team_change(1, 42) is True
    assert "Error in team change guard" in caplog.text


def test_team_guard_inactive_on_client(make_manager, host):
    manager = make_manager(blacklisted_mod_ids=[111])
    _connect(manager, host, mods=[111])
    host.server = False
    assert manager.on_team_change(1, Team.RED) is True
    assert manager.is_flagged(1)


# --- Pending resolution ---


def test_timeout_finalizes_with_resolved_names_only(make_manager, host, clock):
    manager = make_manager(blacklisted_mod_ids=[MOD_A], announce_player_mods=True)
    start = clock.now
    _connect(manager, host, mods=[MOD_A, MOD_B, 7])
    _details(manager, MOD_A, "Aimbot")

    manager.update(start + 9.9)
    assert 1 in manager.gate.pending
    assert host.messages == []

    manager.update(start + 10)
    assert 1 not in manager.gate.pending
    assert host.messages == ["<size=14>alice has 3 mods: Aimbot, 3000000222, & 1 local mod</size>"]
    assert manager.is_flagged(1)


def test_all_details_arriving_finalizes_once(make_manager, host, clock):
    manager = make_manager(announce_player_mods=True)
    start = clock.now
    _connect(manager, host, mods=[MOD_A, MOD_B])

    assert _details(manager, MOD_B, "Hats") == []
    assert _details(manager, MOD_A, "Aimbot") == [1]
    manager.update(start + 30)

    assert host.messages == ["<size=14>alice has 2 mods: Aimbot, Hats</size>"]


def test_kick_notice_uses_titles_once_known(make_manager, host):
    manager = make_manager(blacklisted_mod_ids=[MOD_A])
    _connect(manager, host, mods=[MOD_A])
    _details(manager, MOD_A, "Aimbot")

    manager.on_team_change(1, Team.BLUE)
    assert host.messages[-1].endswith("will be kicked for using blacklisted mod: <b>Aimbot</b>")


def test_recheck_after_details_uses_reloaded_config(make_manager, host):
    manager = make_manager(blacklisted_mod_ids=[MOD_A])
    _connect(manager, host, mods=[MOD_A, MOD_B])
    assert manager.is_flagged(1)

    manager.config.update(blacklisted_mod_ids=[])
    _details(manager, MOD_A, "Aimbot")
    _details(manager, MOD_B, "Hats")

    assert not manager.is_flagged(1)


def test_recheck_can_flag_and_kick_late(make_manager, host, clock):
    manager = make_manager(kick_on_team_join=False)
    assert _connect(manager, host, mods=[MOD_A]) == Admission.ALLOWED

    manager.config.update(blacklisted_mod_ids=[MOD_A])
    _details(manager, MOD_A, "Aimbot")

    assert manager.enforcement.is_scheduled(1)
    manager.update(clock.now + 3)
    assert host.disconnects == [1]


def test_no_announcement_by_default(make_manager, host):
    manager = make_manager()
    _connect(manager, host, mods=[])
    assert host.messages == []


# --- Boundary and lifecycle ---


@pytest.mark.parametrize(
    "payload",
    [
        {"username": "alice", "mod_ids": [1]},
        {"client_id": "abc", "username": "alice"},
        {"client_id": 1, "username": "alice", "mod_ids": "111"},
        {"client_id": -1, "username": "alice"},
    ],
)
def test_malformed_connect_is_dropped(make_manager, host, payload, caplog):
    manager = make_manager(blacklisted_mod_ids=[111])
    with caplog.at_level(logging.ERROR):
        assert manager.handle_connect(payload) is None
    assert "malformed connect event" in caplog.text
    assert len(manager.verdicts) == 0
    assert len(manager.gate.pending) == 0


def test_malformed_item_details_is_dropped(make_manager, host):
    manager = make_manager()
    _connect(manager, host, mods=[MOD_A])

    assert manager.handle_item_details({"title": "No id"}) == []
    assert manager.handle_item_details({"id": MOD_A}) == []
    assert len(manager.cache) == 0
    assert 1 in manager.gate.pending


def test_connect_ignored_off_server(make_manager, host):
    manager = make_manager(blacklisted_mod_ids=[111])
    host.server = False
    assert _connect(manager, host, mods=[111]) is None
    assert not manager.is_flagged(1)


def test_disconnect_drops_all_state(make_manager, host, clock):
    manager = make_manager(blacklisted_mod_ids=[MOD_A])
    _connect(manager, host, mods=[MOD_A, MOD_B])
    assert manager.is_flagged(1)
    assert 1 in manager.gate.pending

    manager.handle_disconnect({"client_id": 1})

    assert not manager.is_flagged(1)
    assert 1 not in manager.gate.pending
    assert not manager.gate.was_checked_recently(1)


def test_start_and_shutdown_manage_subscriptions(make_manager, host):
    from modgate.events import ITEM_DETAILS_EVENT, PLAYER_CONNECT_EVENT, EventBus

    bus = EventBus()
    manager = make_manager(blacklisted_mod_ids=[111])

    with manager.start(bus):
        assert manager.running
        assert bus.handler_count(PLAYER_CONNECT_EVENT) == 1
        host.connected.add(1)
        bus.publish(PLAYER_CONNECT_EVENT, {"client_id": 1, "username": "alice", "mod_ids": [111]})
        assert manager.is_flagged(1)
        with pytest.raises(RuntimeError):
            manager.start(bus)

    assert not manager.running
    assert bus.handler_count(PLAYER_CONNECT_EVENT) == 0
    assert bus.handler_count(ITEM_DETAILS_EVENT) == 0
    assert not manager.is_flagged(1)


def test_immediate_kick_drops_pending_check(make_manager, host, clock):
    manager = make_manager(blacklisted_mod_ids=[MOD_A], kick_on_team_join=False)
    start = clock.now
    assert _connect(manager, host, mods=[MOD_A, MOD_B], username="eve") == Admission.ENFORCED
    assert 1 not in manager.gate.pending

    manager.update(start + 3)
    assert host.disconnects == [1]

    manager.update(start + 15)
    assert len(host.messages) == 1
    assert host.disconnects == [1]
    assert not manager.is_flagged(1)


def test_team_join_kick_drops_pending_check(make_manager, host, clock):
    manager = make_manager(blacklisted_mod_ids=[MOD_A])
    start = clock.now
    _connect(manager, host, mods=[MOD_A, MOD_B], username="eve")
    assert 1 in manager.gate.pending

    assert manager.on_team_change(1, Team.RED) is False
    assert 1 not in manager.gate.pending

    manager.update(start + 15)
    assert host.disconnects == [1]
    assert len(host.messages) == 1
    assert not manager.is_flagged(1)
