"""Data models for the blacklist engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Team(Enum):
    """Team values as the host reports them."""

    NONE = 0
    SPECTATOR = 1
    BLUE = 2
    RED = 3

    @property
    def is_active(self) -> bool:
        return self in (Team.BLUE, Team.RED)


class Admission(Enum):
    """Outcome of a connect-time check."""

    SKIPPED = "skipped"  # duplicate within the cooldown window
    ALLOWED = "allowed"
    FLAGGED = "flagged"  # verdict stored, enforcement deferred to team join
    ENFORCED = "enforced"


@dataclass(frozen=True)
class ModDescriptor:
    """Workshop details for a mod.  Immutable once cached."""

    mod_id: int
    title: str
    description: str = ""
    preview_url: str = ""


@dataclass(frozen=True)
class Classification:
    """Result of checking a mod list against policy."""

    blacklisted: tuple[int, ...] = ()
    local_violation: bool = False

    @property
    def has_violation(self) -> bool:
        return bool(self.blacklisted) or self.local_violation


@dataclass
class PendingCheck:
    """A connecting player whose mod details have not all arrived yet."""

    client_id: int
    external_id: int
    username: str
    mod_ids: tuple[int, ...]
    awaiting: set[int] = field(default_factory=set)
    deadline: float = 0.0


@dataclass(frozen=True)
class Verdict:
    """Finalized decision for a flagged player, waiting to be enforced."""

    client_id: int
    username: str
    blacklisted_mod_ids: tuple[int, ...] = ()
    has_local_mod_violation: bool = False

    def __post_init__(self) -> None:
        if not self.blacklisted_mod_ids and not self.has_local_mod_violation:
            raise ValueError(f"Verdict for client {self.client_id} has no violation")

    @classmethod
    def from_classification(
        cls, client_id: int, username: str, classification: Classification
    ) -> Verdict:
        return cls(
            client_id=client_id,
            username=username,
            blacklisted_mod_ids=classification.blacklisted,
            has_local_mod_violation=classification.local_violation,
        )
