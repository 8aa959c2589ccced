"""
In-memory status probe for testing.

Simulates the snapshot engine of both clusters so reconciliation ticks can
be driven through whole replication cycles without an Events Service.

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with the StatusProbe protocol
"""

from __future__ import annotations

import logging

from ..errors import ProbeError
from .base import RestoreStatus, SnapshotListing, SnapshotState, SnapshotStatus

logger = logging.getLogger(__name__)


class InMemoryStatusProbe:
    """In-memory implementation of StatusProbe.

    Attributes:
        snapshots: Snapshot ids, most recent first
        status: State reported by snapshot_status()
        restore: State reported by restore_status()
        triggered: Engine calls made, in order ("snapshot", "restore")
        fail_triggers: When set, trigger_* raise ProbeError

    Example:
        >>> probe = InMemoryStatusProbe()
        >>> await probe.trigger_snapshot()
        >>> probe.complete_snapshot("snapshot_1")
        >>> (await probe.list_snapshots()).latest_id
        'snapshot_1'
    """

    def __init__(
        self,
        snapshots: list[str] | None = None,
        status: SnapshotStatus | None = None,
        restore: RestoreStatus = RestoreStatus.NOT_STARTED,
    ) -> None:
        self.snapshots = list(snapshots or [])
        self.status = status or (
            SnapshotStatus.completed() if self.snapshots else SnapshotStatus.no_snapshots()
        )
        self.restore = restore
        self.triggered: list[str] = []
        self.queries: list[str] = []
        self.fail_triggers = False

    async def list_snapshots(self) -> SnapshotListing:
        self.queries.append("snapshot-list")
        # a running first snapshot is listed before it has an id
        if not self.snapshots and self.status.state is not SnapshotState.IN_PROGRESS:
            return SnapshotListing.empty()
        return SnapshotListing(
            exists=True,
            latest_id=self.snapshots[0] if self.snapshots else None,
            snapshot_ids=tuple(self.snapshots),
        )

    async def snapshot_status(self) -> SnapshotStatus:
        self.queries.append("snapshot-status")
        return self.status

    async def restore_status(self) -> RestoreStatus:
        self.queries.append("snapshot-restore-status")
        return self.restore

    async def trigger_snapshot(self) -> None:
        if self.fail_triggers:
            raise ProbeError("Snapshot failed: simulated failure", action="snapshot-run")
        self.triggered.append("snapshot")
        self.status = SnapshotStatus.in_progress()
        logger.debug("InMemoryStatusProbe snapshot started")

    async def trigger_restore(self) -> None:
        if self.fail_triggers:
            raise ProbeError("Snapshot restore failed: simulated failure", action="snapshot-restore")
        self.triggered.append("restore")
        self.restore = RestoreStatus.IN_PROGRESS
        logger.debug("InMemoryStatusProbe restore started")

    # Testing helpers

    def complete_snapshot(self, snapshot_id: str) -> None:
        """Finish the running snapshot, making it the latest one."""
        self.snapshots.insert(0, snapshot_id)
        self.status = SnapshotStatus.completed()

    def complete_restore(self) -> None:
        """Finish the running restore."""
        self.restore = RestoreStatus.COMPLETE
