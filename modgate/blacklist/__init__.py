"""Blacklist engine — evaluation, deferred resolution and enforcement.

This package provides:
- Policy: pure classification of a mod list against the config
- Metadata cache and pending resolution of workshop details
- Verdict tracking for flagged players
- Enforcement with a broadcast notice and a grace delay before the kick
- The admission gate and the manager that wires everything to a host
"""

from modgate.blacklist.gate import AdmissionGate
from modgate.blacklist.manager import BlacklistManager
from modgate.blacklist.models import Admission, ModDescriptor, Team, Verdict

__all__ = [
    "AdmissionGate",
    "BlacklistManager",
    "Admission",
    "ModDescriptor",
    "Team",
    "Verdict",
]
