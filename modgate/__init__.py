"""modgate — server-side mod blacklist enforcement for multiplayer game hosts.

Inspects the mod identifiers each connecting player reports, compares them
against a configured blacklist, and removes players who violate policy,
either on connect or when they try to join an active team.
"""

__version__ = "0.1.0"
