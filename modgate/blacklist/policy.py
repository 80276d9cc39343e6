"""Blacklist policy — pure checks of mod ids against the current config.

Two independent rules can fire for a player:

- **blacklist**: any enabled mod id listed in ``blacklisted_mod_ids``
- **local mods**: any id below ``local_mod_threshold`` while
  ``kick_players_with_local_mods`` is on

When the system is disabled nothing is ever reported.
"""

from __future__ import annotations

from typing import Iterable

from modgate.blacklist.models import Classification
from modgate.config import BlacklistConfig


def is_blacklisted(mod_id: int, config: BlacklistConfig) -> bool:
    return mod_id in config.blacklisted_mod_ids


def is_local(mod_id: int, config: BlacklistConfig) -> bool:
    """Local mods carry ids below the workshop range and cannot be looked up."""
    return mod_id < config.local_mod_threshold


def classify(mod_ids: Iterable[int], config: BlacklistConfig) -> Classification:
    """Partition ``mod_ids`` by policy.  Blacklisted ids keep the player's order."""
    if not config.enabled:
        return Classification()

    blacklisted: list[int] = []
    local_violation = False
    for mod_id in mod_ids:
        if is_blacklisted(mod_id, config) and mod_id not in blacklisted:
            blacklisted.append(mod_id)
        if config.kick_players_with_local_mods and is_local(mod_id, config):
            local_violation = True

    return Classification(blacklisted=tuple(blacklisted), local_violation=local_violation)
