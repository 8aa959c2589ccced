"""
esdr - Disaster-recovery coordinator for Events Service clusters.

This package keeps a secondary Events Service cluster in sync with a
primary one through repository snapshots:

- primary: takes a full snapshot, then incremental snapshots once the
  secondary has restored the previous one
- secondary: restores every new snapshot as it becomes available
- cleanup: enforces a retention count over stored snapshots

Architecture:
    ┌───────────┐     ┌──────────────────────┐     ┌──────────────────┐
    │ Scheduler │────▶│ ReconciliationEngine │────▶│   StatusProbe    │
    │ (ticks)   │     │  primary/secondary/  │     │ events-service.sh│
    └───────────┘     │       cleanup        │     └──────────────────┘
                      └──────────┬───────────┘
                                 │
                 ┌───────────────┴───────────────┐
                 ▼                               ▼
         ┌───────────────┐               ┌──────────────────┐
         │  MarkerStore  │               │ IndexAdminClient │
         │ (*.id files,  │               │  (_snapshot,     │
         │  local / ssh) │               │   _ilm, _close)  │
         └───────────────┘               └──────────────────┘

Invariants:
    - At most one snapshot and one restore are in flight at any time
    - The marker files in the repository are the only persisted state
    - A marker moves absent -> pending -> completed -> pending -> ...
    - Cross-node coordination is polled, never locked

How to change safely:
    - Keep all engine text matching inside esdr.probe.parser
    - New decision branches must stay terminal for the tick
    - Test every branch against the in-memory probe and admin client
"""

from ._version import __version__

__all__ = ["__version__"]
