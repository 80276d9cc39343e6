"""Configuration for the blacklist system.

Settings live in a YAML file (``config/mod_blacklist.yaml`` by default).
JSON files are accepted as well since JSON is valid YAML.  The store keeps
one immutable :class:`BlacklistConfig` snapshot and swaps it on reload, so
callers that read ``store.current`` on every evaluation pick up edits
without a restart.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Iterable, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config") / "mod_blacklist.yaml"

# Workshop-assigned identifiers start here; anything below is a local mod.
LOCAL_MOD_THRESHOLD = 2_500_000_000

CONFIG_VERSION = 1


class ConfigError(ValueError):
    """Raised when a configuration mapping holds invalid values."""


@dataclass(frozen=True)
class BlacklistConfig:
    """Immutable snapshot of the blacklist settings."""

    config_version: int = CONFIG_VERSION
    enabled: bool = True
    blacklisted_mod_ids: frozenset[int] = field(default_factory=frozenset)
    broadcast_kicks: bool = True
    debug_logging: bool = False
    kick_players_with_local_mods: bool = False
    # Only kick when joining an active team; if false, kick on connection
    kick_on_team_join: bool = True
    local_mod_threshold: int = LOCAL_MOD_THRESHOLD
    announce_player_mods: bool = False
    enforcement_delay: float = 3.0
    pending_timeout: float = 10.0
    check_cooldown: float = 2.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BlacklistConfig:
        """Build a config from a parsed mapping, validating every known key."""
        known = {f.name: f for f in fields(cls)}
        values: dict[str, Any] = {}

        for key, raw in data.items():
            if key not in known:
                logger.warning("Ignoring unknown config key %r", key)
                continue
            default = known[key].default
            if key == "blacklisted_mod_ids":
                values[key] = _parse_mod_ids(raw)
            elif isinstance(default, bool):
                if not isinstance(raw, bool):
                    raise ConfigError(f"{key} must be true or false, got {raw!r}")
                values[key] = raw
            elif isinstance(default, int):
                if isinstance(raw, bool) or not isinstance(raw, int) or raw < 0:
                    raise ConfigError(f"{key} must be a non-negative integer, got {raw!r}")
                values[key] = raw
            elif isinstance(default, float):
                if isinstance(raw, bool) or not isinstance(raw, (int, float)) or raw < 0:
                    raise ConfigError(f"{key} must be a non-negative number, got {raw!r}")
                values[key] = float(raw)

        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "blacklisted_mod_ids":
                value = sorted(value)
            data[f.name] = value
        return data


def _parse_mod_ids(raw: Any) -> frozenset[int]:
    if raw is None:
        return frozenset()
    if not isinstance(raw, (list, tuple, set, frozenset)):
        raise ConfigError(f"blacklisted_mod_ids must be a list, got {type(raw).__name__}")
    ids = set()
    for item in raw:
        if isinstance(item, bool) or not isinstance(item, int) or item < 0:
            raise ConfigError(f"Invalid mod id in blacklist: {item!r}")
        ids.add(item)
    return frozenset(ids)


class ConfigStore:
    """File-backed, hot-reloadable holder of the current :class:`BlacklistConfig`.

    Passing ``path=None`` gives an in-memory store (nothing is read or written),
    which is what tests and embedded hosts use.
    """

    def __init__(
        self,
        path: str | Path | None = DEFAULT_CONFIG_PATH,
        config: Optional[BlacklistConfig] = None,
    ) -> None:
        self._path = Path(path) if path is not None else None
        self._config = config or BlacklistConfig()
        self._mtime: Optional[float] = None

    @classmethod
    def in_memory(cls, config: Optional[BlacklistConfig] = None, **overrides: Any) -> ConfigStore:
        base = config or BlacklistConfig()
        if overrides:
            base = BlacklistConfig.from_dict({**base.to_dict(), **overrides})
        return cls(path=None, config=base)

    @property
    def path(self) -> Optional[Path]:
        return self._path

    @property
    def current(self) -> BlacklistConfig:
        return self._config

    # -- file I/O ------------------------------------------------------------

    def _stat_mtime(self) -> Optional[float]:
        try:
            return self._path.stat().st_mtime if self._path else None
        except OSError:
            return None

    def _read(self) -> BlacklistConfig:
        if self._path is None:
            raise ConfigError("In-memory config has no file to read")
        data = yaml.safe_load(self._path.read_text())
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError("Config file must contain a mapping at the top level")
        return BlacklistConfig.from_dict(data)

    def load(self) -> BlacklistConfig:
        """Load the config file, creating it with defaults when missing.

        A broken file is logged and replaced by defaults in memory; the file
        itself is left untouched so the operator can fix it.
        """
        if self._path is None:
            return self._config
        try:
            if self._path.exists():
                self._config = self._read()
                logger.info("Config loaded from %s", self._path)
            else:
                self._config = BlacklistConfig()
                self.save()
                logger.info("Created new config at %s", self._path)
        except (OSError, yaml.YAMLError, ConfigError) as e:
            logger.error("Failed to load config: %s", e)
            self._config = BlacklistConfig()
        self._mtime = self._stat_mtime()
        if self._config.blacklisted_mod_ids:
            logger.info("Blacklisted mods: %d", len(self._config.blacklisted_mod_ids))
        return self._config

    def reload(self) -> BlacklistConfig:
        """Re-read the file, keeping the previous snapshot if it is invalid."""
        if self._path is None:
            return self._config
        try:
            self._config = self._read()
            logger.info("Config reloaded.")
        except (OSError, yaml.YAMLError, ConfigError) as e:
            logger.error("Failed to reload config, keeping previous settings: %s", e)
        self._mtime = self._stat_mtime()
        return self._config

    def reload_if_changed(self) -> bool:
        """Reload when the file's mtime moved.  Returns True if a reload ran."""
        if self._path is None:
            return False
        mtime = self._stat_mtime()
        if mtime is None or mtime == self._mtime:
            return False
        self.reload()
        return True

    def save(self) -> bool:
        if self._path is None:
            return True
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(yaml.safe_dump(self._config.to_dict(), sort_keys=False))
            self._mtime = self._stat_mtime()
            logger.info("Config saved to %s", self._path)
            return True
        except OSError as e:
            logger.error("Failed to save config: %s", e)
            return False

    # -- mutation ------------------------------------------------------------

    def update(self, **changes: Any) -> BlacklistConfig:
        """Validate ``changes`` against the current snapshot, swap it in and save."""
        merged = self._config.to_dict()
        merged.update(changes)
        self._config = BlacklistConfig.from_dict(merged)
        self.save()
        return self._config

    def add_blacklisted(self, mod_ids: Iterable[int]) -> BlacklistConfig:
        ids = set(self._config.blacklisted_mod_ids) | set(mod_ids)
        return self.update(blacklisted_mod_ids=sorted(ids))

    def remove_blacklisted(self, mod_ids: Iterable[int]) -> BlacklistConfig:
        ids = set(self._config.blacklisted_mod_ids) - set(mod_ids)
        return self.update(blacklisted_mod_ids=sorted(ids))
