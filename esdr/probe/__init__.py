"""
Snapshot/restore status probe for esdr.

This module isolates every interaction with the Events Service snapshot
engine:
- EventsServiceProbe: runs events-service.sh and parses its output
- InMemoryStatusProbe: scripted engine for tests

Invariants:
    - The reconciliation engine only sees typed state
    - Listings are ordered most recent first
"""

from .base import (
    STATE_STARTED,
    RestoreStatus,
    SnapshotListing,
    SnapshotState,
    SnapshotStatus,
    StatusProbe,
)
from .events_service import EventsServiceProbe
from .memory import InMemoryStatusProbe

__all__ = [
    # Protocol and types
    "StatusProbe",
    "SnapshotListing",
    "SnapshotState",
    "SnapshotStatus",
    "RestoreStatus",
    "STATE_STARTED",
    # Implementations
    "EventsServiceProbe",
    "InMemoryStatusProbe",
]
