"""Tracks connecting players whose mod details are still in flight.

Each player moves through one lifecycle::

    registered -> resolving -> resolved (removed)

A check resolves exactly once: either the last awaited id arrives, or the
deadline passes and :meth:`PendingResolutionTracker.sweep_timeouts` forces it
through with whatever is known by then.  Both sweeps work on a snapshot and
remove completed checks before any finalize callback runs, so a callback can
never see or touch a check that is mid-iteration.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from modgate.blacklist.metadata import MetadataCache
from modgate.blacklist.models import PendingCheck

logger = logging.getLogger(__name__)

PENDING_TIMEOUT = 10.0

# Called with the resolved check, whether it resolved by timeout, and the
# time of the event that resolved it (None when the caller gave no time).
FinalizeCallback = Callable[[PendingCheck, bool, Optional[float]], None]


class PendingResolutionTracker:
    def __init__(self, cache: MetadataCache, on_finalize: FinalizeCallback) -> None:
        self._cache = cache
        self._on_finalize = on_finalize
        self._checks: dict[int, PendingCheck] = {}

    def register(
        self,
        client_id: int,
        external_id: int,
        username: str,
        mod_ids: Iterable[int],
        now: float,
        *,
        timeout: float = PENDING_TIMEOUT,
        needs_details: Optional[Callable[[int], bool]] = None,
    ) -> Optional[PendingCheck]:
        """Start waiting on the unknown ids of ``mod_ids``.

        ``needs_details`` filters which ids are worth waiting for (local
        mods, for instance, never get workshop details).  If nothing is
        outstanding the check resolves on the spot and ``None`` is returned.
        """
        mod_ids = tuple(mod_ids)
        awaiting = {
            m for m in self._cache.unknown(mod_ids)
            if needs_details is None or needs_details(m)
        }
        check = PendingCheck(
            client_id=client_id,
            external_id=external_id,
            username=username,
            mod_ids=mod_ids,
            awaiting=awaiting,
            deadline=now + timeout,
        )

        if client_id in self._checks:
            logger.debug("Replacing pending check for client %d", client_id)
            del self._checks[client_id]

        if not awaiting:
            self._finalize(check, False, now)
            return None

        self._checks[client_id] = check
        logger.debug(
            "Waiting on details for %d mod(s) of %s until %.2f",
            len(awaiting), username, check.deadline,
        )
        return check

    def on_metadata_arrived(self, mod_id: int, now: Optional[float] = None) -> list[int]:
        """Mark ``mod_id`` resolved everywhere.  Returns the client ids finalized."""
        completed = []
        for check in list(self._checks.values()):
            check.awaiting.discard(mod_id)
            if not check.awaiting:
                completed.append(check)

        for check in completed:
            del self._checks[check.client_id]
        for check in completed:
            self._finalize(check, False, now)
        return [c.client_id for c in completed]

    def sweep_timeouts(self, now: float) -> list[int]:
        """Force through every check whose deadline has passed."""
        expired = [c for c in list(self._checks.values()) if now >= c.deadline]

        for check in expired:
            del self._checks[check.client_id]
        for check in expired:
            logger.info(
                "Timeout waiting for mod details for %s, processing check anyway",
                check.username,
            )
            self._finalize(check, True, now)
        return [c.client_id for c in expired]

    def _finalize(self, check: PendingCheck, timed_out: bool, now: Optional[float]) -> None:
        try:
            self._on_finalize(check, timed_out, now)
        except Exception:
            logger.exception("Error processing pending check for %s", check.username)

    def discard(self, client_id: int) -> bool:
        """Drop a check without resolving it (the player left or is being kicked)."""
        return self._checks.pop(client_id, None) is not None

    def get(self, client_id: int) -> Optional[PendingCheck]:
        return self._checks.get(client_id)

    def clear(self) -> None:
        self._checks.clear()

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._checks

    def __len__(self) -> int:
        return len(self._checks)
