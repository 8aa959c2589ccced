"""
Reconciliation engine for esdr.

One tick inspects the snapshot engine and the marker files, then either
starts exactly one operation, records a completed one, or waits.

Primary tick:
    1. No snapshot yet           -> full snapshot, own marker pending
    2. Snapshot STARTED          -> wait (other in-progress states are fatal)
    3. Completed, marker pending -> record latest id in own marker, go on
    4. Secondary behind          -> wait
    5. Otherwise                 -> incremental snapshot, own marker pending

Secondary tick:
    1. No snapshot upstream      -> nothing to do
    2. Restore in progress       -> wait
    3. Own marker pending        -> record latest id, post-restore ops, stop
    4. New snapshot available    -> marker pending, pre-restore ops, restore

Cleanup tick:
    Keep the first ``keep`` snapshots of the listing, delete the rest.

Invariants:
    - Every branch is terminal for the tick (except primary step 3)
    - The primary marks its marker pending once the engine accepted the
      snapshot request; the secondary marks it pending before requesting
      the restore
    - A marker is set to an id only once the operation it tracks completed
    - The primary never starts a snapshot the secondary has not caught up to
    - Any ExternalCallError aborts the tick immediately, nothing is retried

How to change safely:
    - Add tests for every new branch with InMemoryStatusProbe
    - Never interpret engine text here; extend esdr.probe.parser instead
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from ..admin.base import IndexAdminClient
from ..config import DrConfig, RetentionPolicy, Role
from ..errors import ProbeError
from ..marker.store import MarkerStore
from ..probe.base import (
    RestoreStatus,
    SnapshotListing,
    SnapshotState,
    StatusProbe,
)

logger = logging.getLogger(__name__)


class TickOutcome(Enum):
    """What a tick did."""

    SNAPSHOT_STARTED = "snapshot_started"
    RESTORE_STARTED = "restore_started"
    RESTORE_ACKNOWLEDGED = "restore_acknowledged"
    SNAPSHOTS_DELETED = "snapshots_deleted"
    WAITING = "waiting"
    NOTHING_TO_DO = "nothing_to_do"


@dataclass(frozen=True)
class TickResult:
    """Result of one tick.

    Attributes:
        role: Role the tick ran for
        outcome: What the tick did
        reason: Human readable explanation
        snapshot_id: Snapshot id recorded or targeted by the tick, if known
        deleted: Snapshots deleted by a cleanup tick, in deletion order
    """

    role: Role
    outcome: TickOutcome
    reason: str = ""
    snapshot_id: str | None = None
    deleted: tuple[str, ...] = field(default_factory=tuple)

    @property
    def started_operation(self) -> bool:
        return self.outcome in (TickOutcome.SNAPSHOT_STARTED, TickOutcome.RESTORE_STARTED)


class ReconciliationEngine:
    """Per-role decision procedure.

    Attributes:
        config: Run configuration
        probe: Snapshot/restore engine
        admin: Index administration API of the cluster this node drives
        markers: Marker files of this node
        retention: Retention policy for cleanup mode

    Example:
        >>> engine = ReconciliationEngine(config, probe, admin, markers)
        >>> await engine.configure_repository()
        >>> result = await engine.tick()
    """

    def __init__(
        self,
        config: DrConfig,
        probe: StatusProbe,
        admin: IndexAdminClient,
        markers: MarkerStore,
        retention: RetentionPolicy | None = None,
    ) -> None:
        self.config = config
        self.probe = probe
        self.admin = admin
        self.markers = markers
        self.retention = retention or RetentionPolicy()

    @property
    def role(self) -> Role:
        return self.config.role

    async def configure_repository(self) -> None:
        """Register the snapshot repository, read-only on the secondary.

        Runs once per process before the first tick. Cleanup mode works on
        a repository the primary already registered and skips this.

        Raises:
            AdminApiError: If the cluster does not acknowledge the request.
        """
        if self.role is Role.CLEANUP:
            return

        logger.info("Configuring snapshot repository.")
        await self.admin.register_repository(
            self.config.repo_name,
            self.config.node.repo_path,
            readonly=self.role is Role.SECONDARY,
        )

    async def tick(self) -> TickResult:
        """Run the decision procedure of the configured role."""
        if self.role is Role.PRIMARY:
            return await self.primary_tick()
        if self.role is Role.SECONDARY:
            return await self.secondary_tick()
        return await self.cleanup_tick()

    def _result(self, outcome: TickOutcome, reason: str, **kwargs) -> TickResult:
        return TickResult(role=self.role, outcome=outcome, reason=reason, **kwargs)

    @staticmethod
    def _latest_id(listing: SnapshotListing) -> str:
        if not listing.latest_id:
            raise ProbeError("Snapshot listing has no latest snapshot id", action="snapshot-list")
        return listing.latest_id

    async def primary_tick(self) -> TickResult:
        """Take a snapshot when none is running and the secondary caught up."""
        logger.info("Checking if snapshots exist.")
        listing = await self.probe.list_snapshots()
        if not listing.exists:
            logger.info("No snapshots exist. Doing full snapshot.")
            await self.probe.trigger_snapshot()
            # id is recorded once the snapshot has completed
            await self.markers.write(Role.PRIMARY, "")
            return self._result(TickOutcome.SNAPSHOT_STARTED, "full snapshot started")

        logger.info("Checking if snapshot is in progress.")
        status = await self.probe.snapshot_status()
        if status.state is SnapshotState.IN_PROGRESS:
            if not status.is_started:
                raise ProbeError(f"Snapshot error: snapshot state is {status.tag}", action="snapshot-status")
            logger.info("Snapshot already in progress. Cancelling.")
            return self._result(TickOutcome.WAITING, "snapshot in progress")
        if status.state is SnapshotState.NO_SNAPSHOTS:
            raise ProbeError(
                "Snapshot status reports no snapshots although the listing has some",
                action="snapshot-status",
            )

        if self.markers.read(Role.PRIMARY).is_pending:
            logger.info("Refreshing snapshot id.")
            listing = await self.probe.list_snapshots()
            await self.markers.write(Role.PRIMARY, self._latest_id(listing))
            logger.info("Snapshot has completed.")

        logger.info("Checking if secondary has restored latest snapshot.")
        latest_id = self._latest_id(listing)
        restored = self.markers.read(Role.SECONDARY)
        if not restored.matches(latest_id):
            logger.info(
                "Latest snapshot not restored on secondary. Cancelling.",
                extra={"latest_snapshot": latest_id, "secondary_marker": str(restored)},
            )
            return self._result(
                TickOutcome.WAITING, "secondary has not restored the latest snapshot", snapshot_id=latest_id
            )

        logger.info("Doing incremental snapshot.")
        await self.probe.trigger_snapshot()
        await self.markers.write(Role.PRIMARY, "")
        return self._result(TickOutcome.SNAPSHOT_STARTED, "incremental snapshot started")

    async def secondary_tick(self) -> TickResult:
        """Restore the latest snapshot once, acknowledging it when done."""
        remote = self.config.remote

        logger.info("Checking if snapshots exist.")
        listing = await self.probe.list_snapshots()
        if not listing.exists:
            logger.info("No snapshots to restore. Cancelling.")
            return self._result(TickOutcome.NOTHING_TO_DO, "no snapshots to restore")

        logger.info("Checking if snapshot restore is in progress.")
        if await self.probe.restore_status() is RestoreStatus.IN_PROGRESS:
            logger.info("Snapshot restore already in progress. Cancelling.")
            return self._result(TickOutcome.WAITING, "restore in progress")

        latest_id = self._latest_id(listing)
        marker = self.markers.read(Role.SECONDARY)

        if marker.is_pending:
            await self.markers.write(Role.SECONDARY, latest_id, remote=remote)
            await self.post_restore_operations()
            logger.info("Snapshot restore has completed.", extra={"snapshot": latest_id})
            return self._result(
                TickOutcome.RESTORE_ACKNOWLEDGED, "restore completed", snapshot_id=latest_id
            )

        logger.info("Checking if a new snapshot is available.")
        if not marker.matches(latest_id):
            logger.info("Doing snapshot restore.", extra={"snapshot": latest_id})
            # id is recorded once the restore has completed
            await self.markers.write(Role.SECONDARY, "", remote=remote)
            await self.pre_restore_operations()
            await self.probe.trigger_restore()
            return self._result(TickOutcome.RESTORE_STARTED, "restore started", snapshot_id=latest_id)

        logger.info("No new snapshot to restore. Cancelling.")
        return self._result(TickOutcome.NOTHING_TO_DO, "latest snapshot already restored", snapshot_id=latest_id)

    async def cleanup_tick(self) -> TickResult:
        """Delete every snapshot past the first ``keep`` of the listing.

        The listing is used in the order the engine prints it, most recent
        first.
        """
        listing = await self.probe.list_snapshots()
        expired = listing.snapshot_ids[self.retention.keep :]
        if not expired:
            logger.info(f"Nothing to clean up ({len(listing.snapshot_ids)} snapshots, keeping {self.retention.keep}).")
            return self._result(TickOutcome.NOTHING_TO_DO, "nothing to delete")

        deleted = []
        for snapshot in expired:
            logger.info(f"Deleting snapshot {snapshot}")
            await self.admin.delete_snapshot(self.config.repo_name, snapshot)
            deleted.append(snapshot)

        return self._result(
            TickOutcome.SNAPSHOTS_DELETED,
            f"deleted {len(deleted)} snapshots",
            deleted=tuple(deleted),
        )

    async def pre_restore_operations(self) -> None:
        """Stop ILM and close every index so the restore can replace them."""
        logger.info("Running pre-restore operations.")
        await self.admin.stop_ilm()

        indices = await self.admin.list_indices(self.config.close_index_pattern)
        for index in indices:
            await self.admin.close_index(index)
        logger.debug(f"Closed {len(indices)} indices")

    async def post_restore_operations(self) -> None:
        """Restart ILM. Indices are reopened by the restore itself."""
        logger.info("Running post-restore operations.")
        await self.admin.start_ilm()
