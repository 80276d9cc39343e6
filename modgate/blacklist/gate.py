"""Admission gate — the two host-triggered entry points.

``admit_player`` runs when a player reports its mods on connect.
``guard_team_join`` runs when a player asks to change team and decides
whether the change may go through.

Connect-time checks decide the verdict straight away, since blacklist
membership only needs the ids.  Workshop details are still requested for
unknown ids; once they are all in (or the wait times out) the player is
checked again against the then-current config and, optionally, their mod
list is announced with proper titles.  A player whose kick has been
scheduled has nothing left to resolve, so their check is dropped.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Optional

from modgate.blacklist import policy
from modgate.blacklist.enforcement import EnforcementScheduler
from modgate.blacklist.messages import format_mod_list
from modgate.blacklist.metadata import MetadataCache
from modgate.blacklist.models import (
    Admission,
    Classification,
    ModDescriptor,
    PendingCheck,
    Team,
    Verdict,
)
from modgate.blacklist.pending import PendingResolutionTracker
from modgate.blacklist.verdicts import VerdictTracker
from modgate.config import BlacklistConfig, ConfigStore
from modgate.host import ChatSink, MetadataProvider

logger = logging.getLogger(__name__)

# Cooldown stamps older than this are dropped by the tick.
COOLDOWN_RETENTION = 10.0


class AdmissionGate:
    def __init__(
        self,
        config: ConfigStore,
        cache: MetadataCache,
        verdicts: VerdictTracker,
        enforcement: EnforcementScheduler,
        provider: Optional[MetadataProvider] = None,
        chat: Optional[ChatSink] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._cache = cache
        self._verdicts = verdicts
        self._enforcement = enforcement
        self._provider = provider
        self._chat = chat
        self._clock = clock
        self._pending = PendingResolutionTracker(cache, self._finalize)
        self._last_checked: dict[int, float] = {}

    @property
    def pending(self) -> PendingResolutionTracker:
        return self._pending

    def _debug(self, msg: str, *args: object) -> None:
        if self._config.current.debug_logging:
            logger.info(msg, *args)
        else:
            logger.debug(msg, *args)

    # -- connect -------------------------------------------------------------

    def admit_player(
        self,
        client_id: int,
        external_id: int,
        username: str,
        mod_ids: Iterable[int],
        now: Optional[float] = None,
    ) -> Admission:
        now = self._clock() if now is None else now
        cfg = self._config.current

        last = self._last_checked.get(client_id)
        if last is not None and now - last < cfg.check_cooldown:
            self._debug("Skipping duplicate check for %s (checked %.2fs ago)", username, now - last)
            return Admission.SKIPPED
        self._last_checked[client_id] = now

        mod_ids = tuple(mod_ids)
        logger.info("Checking mods for %s (%d): %d mod(s)", username, external_id, len(mod_ids))
        if not cfg.enabled:
            self._debug("Blacklist disabled, allowing %s", username)
            self._verdicts.clear(client_id)
            self._pending.discard(client_id)
            return Admission.ALLOWED

        result = self._apply(client_id, username, policy.classify(mod_ids, cfg), cfg, now)
        if result is Admission.ENFORCED:
            self._pending.discard(client_id)
            return result

        wanted = self._wanted_details(mod_ids, cfg)
        if wanted and self._provider is not None:
            try:
                self._provider.request_item_details(sorted(wanted))
            except Exception as e:
                logger.error("Failed to request mod details for %s: %s", username, e)

        self._pending.register(
            client_id,
            external_id,
            username,
            mod_ids,
            now,
            timeout=cfg.pending_timeout,
            needs_details=lambda m: not policy.is_local(m, cfg),
        )
        return result

    def _wanted_details(self, mod_ids: tuple[int, ...], cfg: BlacklistConfig) -> set[int]:
        return {m for m in self._cache.unknown(mod_ids) if not policy.is_local(m, cfg)}

    def _apply(
        self,
        client_id: int,
        username: str,
        classification: Classification,
        cfg: BlacklistConfig,
        now: float,
    ) -> Admission:
        if not classification.has_violation:
            self._debug("Player %s has no blacklisted or local mods", username)
            self._verdicts.clear(client_id)
            return Admission.ALLOWED

        self._verdicts.set_verdict(
            client_id, Verdict.from_classification(client_id, username, classification)
        )
        count = len(classification.blacklisted)
        if classification.local_violation and count:
            logger.info("Player %s has local mod + %d blacklisted mod(s)", username, count)
        elif classification.local_violation:
            logger.info("Player %s has local mod", username)
        else:
            logger.info(
                "Player %s has %d blacklisted mod(s): %s",
                username, count, ", ".join(str(m) for m in classification.blacklisted),
            )

        if not cfg.kick_on_team_join:
            self._enforcement.enforce(client_id, now)
            return Admission.ENFORCED
        return Admission.FLAGGED

    def _finalize(self, check: PendingCheck, timed_out: bool, now: Optional[float]) -> None:
        now = self._clock() if now is None else now
        cfg = self._config.current

        if cfg.announce_player_mods:
            self._announce(check, cfg)

        if self._enforcement.is_scheduled(check.client_id):
            self._debug("Kick already scheduled for %s, skipping re-check", check.username)
            return

        classification = policy.classify(check.mod_ids, cfg)
        current = self._verdicts.get(check.client_id)
        if classification.has_violation:
            fresh = Verdict.from_classification(check.client_id, check.username, classification)
            if fresh == current:
                self._debug("Verdict for %s unchanged after details resolved", check.username)
                return
            logger.info(
                "Player %s flagged after %s",
                check.username, "timeout" if timed_out else "pending check completed",
            )
        elif current is None:
            return

        self._apply(check.client_id, check.username, classification, cfg, now)

    def _announce(self, check: PendingCheck, cfg: BlacklistConfig) -> None:
        message = format_mod_list(
            check.username,
            check.mod_ids,
            self._cache.resolve_or_id,
            lambda m: policy.is_local(m, cfg),
        )
        logger.info("%s: %s", check.username, message)
        if self._chat is None:
            return
        try:
            self._chat.send_system_message(message)
        except Exception as e:
            logger.error("Failed to announce mods for %s: %s", check.username, e)

    # -- metadata ------------------------------------------------------------

    def on_metadata(self, descriptor: ModDescriptor, now: Optional[float] = None) -> list[int]:
        """Cache ``descriptor`` and advance every check waiting on it."""
        self._cache.record(descriptor)
        return self._pending.on_metadata_arrived(descriptor.mod_id, now)

    # -- team join -----------------------------------------------------------

    def guard_team_join(
        self, client_id: int, requested_team: Team | int, now: Optional[float] = None
    ) -> bool:
        """Return True if the team change may proceed."""
        team = requested_team if isinstance(requested_team, Team) else Team(requested_team)
        if not team.is_active:
            return True
        if not self._verdicts.is_flagged(client_id):
            return True

        logger.warning(
            "Preventing player %d from joining %s team due to blacklisted mods",
            client_id, team.name.title(),
        )
        self._enforcement.enforce(client_id, now)
        self._pending.discard(client_id)
        return False

    # -- housekeeping --------------------------------------------------------

    def on_client_disconnected(self, client_id: int) -> None:
        dropped = self._pending.discard(client_id)
        verdict = self._verdicts.clear(client_id)
        cancelled = self._enforcement.cancel(client_id)
        self._last_checked.pop(client_id, None)
        if dropped or verdict or cancelled:
            self._debug(
                "Client %d left (pending=%s, flagged=%s, kick cancelled=%s)",
                client_id, dropped, verdict is not None, cancelled,
            )

    def tick(self, now: Optional[float] = None) -> None:
        now = self._clock() if now is None else now
        self._pending.sweep_timeouts(now)
        stale = [c for c, t in self._last_checked.items() if now - t > COOLDOWN_RETENTION]
        for client_id in stale:
            del self._last_checked[client_id]

    def was_checked_recently(self, client_id: int) -> bool:
        return client_id in self._last_checked

    def reset(self) -> None:
        self._pending.clear()
        self._last_checked.clear()
