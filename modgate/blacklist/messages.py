"""Chat text for kick notices and mod list announcements.

The strings use the host's rich-text tags (``<b>``, ``<color>``, ``<size>``).
Mod names come from the metadata cache and fall back to the raw id.
"""

from __future__ import annotations

from typing import Callable, Sequence

from modgate.blacklist.models import Verdict

KICK_PREFIX = "<b><color=#FF6666>[Blacklist]</color></b>"

NameResolver = Callable[[int], str]


def format_kick_notice(verdict: Verdict, resolve_name: NameResolver) -> str:
    user = f"<b>{verdict.username}</b>"
    mod_ids = verdict.blacklisted_mod_ids
    count = len(mod_ids)
    mod_list = ", ".join(resolve_name(m) for m in mod_ids)

    if verdict.has_local_mod_violation and count > 0:
        return (
            f"{KICK_PREFIX} {user} will be kicked for using a <b>local mod</b> "
            f"and {count} blacklisted mod: <b>{mod_list}</b>"
        )
    if verdict.has_local_mod_violation:
        return f"{KICK_PREFIX} {user} will be kicked for using a <b>local mod</b>."
    if count == 1:
        return f"{KICK_PREFIX} {user} will be kicked for using blacklisted mod: <b>{mod_list}</b>"
    return f"{KICK_PREFIX} {user} will be kicked for using {count} blacklisted mod: <b>{mod_list}</b>"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def format_mod_list(
    username: str,
    mod_ids: Sequence[int],
    resolve_name: NameResolver,
    is_local: Callable[[int], bool],
) -> str:
    """Announcement listing a player's mods; local mods are counted, not named."""
    if not mod_ids:
        return f"<size=14>{username} has no mods.</size>"

    names = [resolve_name(m) for m in mod_ids if not is_local(m)]
    local_count = sum(1 for m in mod_ids if is_local(m))

    output = ", ".join(names)
    if local_count:
        output += f"{', & ' if output else ''}{_plural(local_count, 'local mod')}"

    return f"<size=14>{username} has {_plural(len(mod_ids), 'mod')}: {output}</size>"
