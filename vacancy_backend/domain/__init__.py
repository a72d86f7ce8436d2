"""Domain layer definitions."""

from .snapshot import EMPTY_SNAPSHOT, Snapshot

__all__ = [
    "EMPTY_SNAPSHOT",
    "Snapshot",
]
