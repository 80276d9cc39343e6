"""Per-client verdicts waiting to be enforced."""

from __future__ import annotations

from typing import Optional

from modgate.blacklist.models import Verdict


class VerdictTracker:
    """At most one :class:`Verdict` per client.  Setting again overwrites."""

    def __init__(self) -> None:
        self._verdicts: dict[int, Verdict] = {}

    def set_verdict(self, client_id: int, verdict: Verdict) -> None:
        if verdict.client_id != client_id:
            raise ValueError(
                f"Verdict for client {verdict.client_id} stored under {client_id}"
            )
        self._verdicts[client_id] = verdict

    def clear(self, client_id: int) -> Optional[Verdict]:
        """Remove and return the verdict for ``client_id``, if any."""
        return self._verdicts.pop(client_id, None)

    def get(self, client_id: int) -> Optional[Verdict]:
        return self._verdicts.get(client_id)

    def is_flagged(self, client_id: int) -> bool:
        return client_id in self._verdicts

    def flagged(self) -> list[Verdict]:
        return list(self._verdicts.values())

    def clear_all(self) -> None:
        self._verdicts.clear()

    def __len__(self) -> int:
        return len(self._verdicts)
