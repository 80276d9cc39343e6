"""Cache of workshop mod details, kept for the life of the process."""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, Optional

from modgate.blacklist.models import ModDescriptor

logger = logging.getLogger(__name__)


class MetadataCache:
    """Maps mod id to :class:`ModDescriptor`.  Entries are never replaced or evicted."""

    def __init__(self) -> None:
        self._entries: dict[int, ModDescriptor] = {}

    def record(self, descriptor: ModDescriptor) -> bool:
        """Store ``descriptor`` unless its id is already known.  Returns True if new."""
        if descriptor.mod_id in self._entries:
            return False
        self._entries[descriptor.mod_id] = descriptor
        logger.debug("Cached details for mod %d: %s", descriptor.mod_id, descriptor.title)
        return True

    def get(self, mod_id: int) -> Optional[ModDescriptor]:
        return self._entries.get(mod_id)

    def resolve_or_id(self, mod_id: int) -> str:
        """Display name for ``mod_id``: its title if known, else the id itself."""
        descriptor = self._entries.get(mod_id)
        if descriptor is None:
            return str(mod_id)
        return descriptor.title

    def unknown(self, mod_ids: Iterable[int]) -> set[int]:
        return {m for m in mod_ids if m not in self._entries}

    def __contains__(self, mod_id: object) -> bool:
        return mod_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ModDescriptor]:
        return iter(list(self._entries.values()))
