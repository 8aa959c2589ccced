"""
Base protocol and types for the snapshot/restore status probe.

The probe is the only component that talks to the Events Service snapshot
engine. Everything it returns is typed; the reconciliation engine never
sees command output.

Invariants:
    - SnapshotListing.snapshot_ids is ordered most recent first
    - SnapshotListing.latest_id is None when no snapshot exists, or when
      the first snapshot is still running and has no completed id yet
    - trigger_* return only after the engine accepted the request

How to change safely:
    - Protocol changes require updating EventsServiceProbe and
      InMemoryStatusProbe
    - Keep the listing order contract; cleanup relies on it
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol, runtime_checkable

# Snapshot state reported while the engine is still writing a snapshot
STATE_STARTED = "STARTED"


class SnapshotState(Enum):
    """Coarse state of the most recent snapshot."""

    NO_SNAPSHOTS = "no_snapshots"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass(frozen=True)
class SnapshotStatus:
    """State of the most recent snapshot.

    Attributes:
        state: Coarse state
        tag: Engine state word for IN_PROGRESS (STARTED, FAILED, ...)
    """

    state: SnapshotState
    tag: str | None = None

    @classmethod
    def completed(cls) -> SnapshotStatus:
        return cls(SnapshotState.COMPLETED)

    @classmethod
    def in_progress(cls, tag: str = STATE_STARTED) -> SnapshotStatus:
        return cls(SnapshotState.IN_PROGRESS, tag)

    @classmethod
    def no_snapshots(cls) -> SnapshotStatus:
        return cls(SnapshotState.NO_SNAPSHOTS)

    @property
    def is_started(self) -> bool:
        """True while a snapshot is legitimately running."""
        return self.state is SnapshotState.IN_PROGRESS and self.tag == STATE_STARTED

    def __str__(self) -> str:
        if self.state is SnapshotState.IN_PROGRESS:
            return f"in_progress({self.tag})"
        return self.state.value


class RestoreStatus(Enum):
    """State of the most recent restore on the secondary cluster."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


@dataclass(frozen=True)
class SnapshotListing:
    """Snapshots available in the repository.

    Attributes:
        exists: Whether any snapshot has been taken
        latest_id: Id of the most recent completed snapshot, if any
        snapshot_ids: Successful snapshots, most recent first
    """

    exists: bool
    latest_id: str | None = None
    snapshot_ids: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def empty(cls) -> SnapshotListing:
        return cls(exists=False)


@runtime_checkable
class StatusProbe(Protocol):
    """Protocol for the snapshot/restore engine.

    Example:
        >>> probe = EventsServiceProbe(config.node)
        >>> listing = await probe.list_snapshots()
        >>> if not listing.exists:
        ...     await probe.trigger_snapshot()
    """

    @abstractmethod
    async def list_snapshots(self) -> SnapshotListing:
        """List snapshots in the repository, most recent first.

        Raises:
            ProbeError: If the listing cannot be obtained
        """
        ...

    @abstractmethod
    async def snapshot_status(self) -> SnapshotStatus:
        """Get the state of the most recent snapshot.

        Raises:
            ProbeError: If the status cannot be obtained
        """
        ...

    @abstractmethod
    async def restore_status(self) -> RestoreStatus:
        """Get the state of the most recent restore.

        Raises:
            ProbeError: If the status cannot be obtained
        """
        ...

    @abstractmethod
    async def trigger_snapshot(self) -> None:
        """Start a snapshot (full the first time, incremental afterwards).

        Raises:
            ProbeError: If the engine did not accept the request
        """
        ...

    @abstractmethod
    async def trigger_restore(self) -> None:
        """Start restoring the latest snapshot.

        Raises:
            ProbeError: If the engine did not accept the request
        """
        ...
