"""Deferred actions keyed by client and fire time.

The host drives time: :meth:`DeferredActionQueue.run_due` is called from the
periodic tick and runs whatever has come due.  Nothing sleeps.  Each key
holds at most one live action; scheduling the same key again replaces it.
"""

from __future__ import annotations

import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Callable, Hashable, Optional

logger = logging.getLogger(__name__)


@dataclass(order=True)
class ScheduledAction:
    fire_at: float
    seq: int
    key: Hashable = field(compare=False)
    callback: Callable[[], None] = field(compare=False, repr=False)
    description: str = field(default="", compare=False)
    cancelled: bool = field(default=False, compare=False)

    def cancel(self) -> None:
        self.cancelled = True


class DeferredActionQueue:
    def __init__(self) -> None:
        self._heap: list[ScheduledAction] = []
        self._live: dict[Hashable, ScheduledAction] = {}
        self._counter = itertools.count()

    def schedule(
        self,
        key: Hashable,
        fire_at: float,
        callback: Callable[[], None],
        description: str = "",
    ) -> ScheduledAction:
        existing = self._live.get(key)
        if existing is not None:
            existing.cancel()
            logger.debug("Replacing scheduled action for %r", key)
        action = ScheduledAction(
            fire_at=fire_at,
            seq=next(self._counter),
            key=key,
            callback=callback,
            description=description,
        )
        heapq.heappush(self._heap, action)
        self._live[key] = action
        return action

    def cancel(self, key: Hashable) -> bool:
        action = self._live.pop(key, None)
        if action is None:
            return False
        action.cancel()
        return True

    def is_scheduled(self, key: Hashable) -> bool:
        return key in self._live

    def get(self, key: Hashable) -> Optional[ScheduledAction]:
        return self._live.get(key)

    def run_due(self, now: float) -> int:
        """Run every live action with ``fire_at <= now`` in fire order.

        Returns the number of callbacks run.  A failing callback is logged
        and does not stop the rest.
        """
        due = []
        while self._heap and self._heap[0].fire_at <= now:
            action = heapq.heappop(self._heap)
            if not action.cancelled:
                due.append(action)

        for action in due:
            if self._live.get(action.key) is action:
                del self._live[action.key]

        for action in due:
            try:
                action.callback()
            except Exception:
                logger.exception("Scheduled action %s failed", action.description or action.key)
        return len(due)

    def clear(self) -> None:
        for action in self._live.values():
            action.cancel()
        self._live.clear()
        self._heap.clear()

    def __len__(self) -> int:
        return len(self._live)
