"""Tests for verdicts and the deferred action queue."""

import pytest

from modgate.blacklist.actions import DeferredActionQueue
from modgate.blacklist.models import Verdict
from modgate.blacklist.verdicts import VerdictTracker


# --- Verdicts ---


def test_verdict_requires_a_violation():
    with pytest.raises(ValueError):
        Verdict(client_id=1, username="alice")


def test_set_get_clear():
    tracker = VerdictTracker()
    verdict = Verdict(1, "alice", (111,))
    tracker.set_verdict(1, verdict)

    assert tracker.is_flagged(1)
    assert tracker.get(1) is verdict
    assert tracker.clear(1) is verdict
    assert not tracker.is_flagged(1)
    assert tracker.clear(1) is None


def test_set_overwrites_instead_of_merging():
    tracker = VerdictTracker()
    tracker.set_verdict(1, Verdict(1, "alice", (111, 222)))
    tracker.set_verdict(1, Verdict(1, "alice", (), True))

    verdict = tracker.get(1)
    assert verdict.blacklisted_mod_ids == ()
    assert verdict.has_local_mod_violation
    assert len(tracker) == 1


def test_set_rejects_mismatched_client():
    tracker = VerdictTracker()
    with pytest.raises(ValueError):
        tracker.set_verdict(2, Verdict(1, "alice", (111,)))


# --- Deferred actions ---


def test_actions_run_when_due_in_fire_order():
    queue = DeferredActionQueue()
    fired = []
    queue.schedule("b", 5.0, lambda: fired.append("b"))
    queue.schedule("a", 3.0, lambda: fired.append("a"))

    assert queue.run_due(2.9) == 0
    assert queue.run_due(5.0) == 2
    assert fired == ["a", "b"]
    assert len(queue) == 0


def test_cancel():
    queue = DeferredActionQueue()
    fired = []
    queue.schedule(1, 3.0, lambda: fired.append(1))

    assert queue.is_scheduled(1)
    assert queue.cancel(1)
    assert not queue.cancel(1)
    queue.run_due(10.0)
    assert fired == []


def test_reschedule_replaces_previous_action():
    queue = DeferredActionQueue()
    fired = []
    queue.schedule(1, 3.0, lambda: fired.append("old"))
    queue.schedule(1, 4.0, lambda: fired.append("new"))

    queue.run_due(3.5)
    assert fired == []
    queue.run_due(4.0)
    assert fired == ["new"]


def test_failing_action_does_not_stop_others():
    queue = DeferredActionQueue()
    fired = []

    def boom():
        raise RuntimeError("boom")

    queue.schedule(1, 1.0, boom)
    queue.schedule(2, 1.0, lambda: fired.append(2))
    assert queue.run_due(1.0) == 2
    assert fired == [2]


def test_action_scheduled_from_callback_runs_later():
    queue = DeferredActionQueue()
    fired = []
    queue.schedule(1, 1.0, lambda: queue.schedule(2, 1.0, lambda: fired.append(2)))

    queue.run_due(1.0)
    assert fired == []
    assert queue.is_scheduled(2)
    queue.run_due(1.0)
    assert fired == [2]
