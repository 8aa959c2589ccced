"""
Integration tests for the primary role.

Drives ReconciliationEngine with the in-memory engine and admin client
against real marker files in a temporary repository.

Tests cover:
- First snapshot and snapshot completion
- Waiting on a running snapshot or a lagging secondary
- Incremental snapshot once the secondary caught up
- Marker transitions across a whole cycle
- A running first snapshot seen through the events-service script
"""

import logging

import pytest

from esdr.admin import InMemoryIndexAdminClient
from esdr.config import Role
from esdr.errors import MarkerWriteError, ProbeError
from esdr.marker import MarkerStore
from esdr.probe import EventsServiceProbe, InMemoryStatusProbe, SnapshotStatus
from esdr.reconcile import ReconciliationEngine, TickOutcome
from tests.fakes import calls, install_events_service, set_output


class TestPrimaryTick:
    """Tests for the primary decision procedure."""

    @pytest.fixture
    def markers(self, primary_config):
        return MarkerStore.from_config(primary_config)

    @pytest.fixture
    def admin(self):
        return InMemoryIndexAdminClient()

    def make_engine(self, config, probe, admin, markers):
        return ReconciliationEngine(config, probe, admin, markers)

    @pytest.mark.asyncio
    async def test_first_snapshot(self, primary_config, admin, markers):
        """No snapshot yet: full snapshot and pending marker."""
        probe = InMemoryStatusProbe()
        engine = self.make_engine(primary_config, probe, admin, markers)

        result = await engine.tick()

        assert result.outcome is TickOutcome.SNAPSHOT_STARTED
        assert result.started_operation
        assert probe.triggered == ["snapshot"]
        assert markers.read(Role.PRIMARY).is_pending
        assert admin.calls == []

    @pytest.mark.asyncio
    async def test_completion_recorded_then_waits_for_secondary(self, primary_config, admin, markers):
        """Completed snapshot is recorded; absent secondary marker means wait."""
        await markers.write(Role.PRIMARY, "")
        probe = InMemoryStatusProbe(snapshots=["snapshot_a"])
        engine = self.make_engine(primary_config, probe, admin, markers)

        result = await engine.tick()

        assert markers.read(Role.PRIMARY).value == "snapshot_a"
        assert result.outcome is TickOutcome.WAITING
        assert result.snapshot_id == "snapshot_a"
        assert probe.triggered == []

    @pytest.mark.asyncio
    async def test_snapshot_started_is_idempotent(self, primary_config, admin, markers, caplog):
        """Two ticks on a running snapshot trigger nothing and keep the marker."""
        caplog.set_level(logging.INFO, logger="esdr")
        await markers.write(Role.PRIMARY, "")
        probe = InMemoryStatusProbe(snapshots=["snapshot_a"], status=SnapshotStatus.in_progress())
        engine = self.make_engine(primary_config, probe, admin, markers)

        first = await engine.tick()
        second = await engine.tick()

        assert first.outcome is TickOutcome.WAITING
        assert second.outcome is TickOutcome.WAITING
        assert probe.triggered == []
        assert markers.read(Role.PRIMARY).is_pending
        assert caplog.text.count("Snapshot already in progress. Cancelling.") == 2

    @pytest.mark.asyncio
    async def test_snapshot_failed_state_is_fatal(self, primary_config, admin, markers):
        probe = InMemoryStatusProbe(snapshots=["snapshot_a"], status=SnapshotStatus.in_progress("FAILED"))
        engine = self.make_engine(primary_config, probe, admin, markers)

        with pytest.raises(ProbeError) as exc_info:
            await engine.tick()

        assert "FAILED" in exc_info.value.message
        assert probe.triggered == []

    @pytest.mark.asyncio
    async def test_status_without_snapshots_is_fatal(self, primary_config, admin, markers):
        probe = InMemoryStatusProbe(snapshots=["snapshot_a"], status=SnapshotStatus.no_snapshots())
        engine = self.make_engine(primary_config, probe, admin, markers)

        with pytest.raises(ProbeError):
            await engine.tick()

    @pytest.mark.asyncio
    async def test_secondary_behind_waits(self, primary_config, admin, markers):
        await markers.write(Role.PRIMARY, "snapshot_b")
        await markers.write(Role.SECONDARY, "snapshot_a")
        probe = InMemoryStatusProbe(snapshots=["snapshot_b", "snapshot_a"])
        engine = self.make_engine(primary_config, probe, admin, markers)

        result = await engine.tick()

        assert result.outcome is TickOutcome.WAITING
        assert probe.triggered == []

    @pytest.mark.asyncio
    async def test_secondary_restoring_waits(self, primary_config, admin, markers):
        """A pending secondary marker is not a match."""
        await markers.write(Role.PRIMARY, "snapshot_a")
        await markers.write(Role.SECONDARY, "")
        probe = InMemoryStatusProbe(snapshots=["snapshot_a"])
        engine = self.make_engine(primary_config, probe, admin, markers)

        result = await engine.tick()

        assert result.outcome is TickOutcome.WAITING

    @pytest.mark.asyncio
    async def test_incremental_snapshot(self, primary_config, admin, markers):
        """Secondary caught up: exactly one incremental snapshot."""
        await markers.write(Role.PRIMARY, "snapshot_a")
        await markers.write(Role.SECONDARY, "snapshot_a")
        probe = InMemoryStatusProbe(snapshots=["snapshot_a"])
        engine = self.make_engine(primary_config, probe, admin, markers)

        result = await engine.tick()

        assert result.outcome is TickOutcome.SNAPSHOT_STARTED
        assert probe.triggered == ["snapshot"]
        assert markers.read(Role.PRIMARY).is_pending

    @pytest.mark.asyncio
    async def test_pending_marker_then_secondary_caught_up(self, primary_config, admin, markers):
        """Recording completion continues to the secondary check in the same tick."""
        await markers.write(Role.PRIMARY, "")
        await markers.write(Role.SECONDARY, "snapshot_a")
        probe = InMemoryStatusProbe(snapshots=["snapshot_a"])
        engine = self.make_engine(primary_config, probe, admin, markers)

        result = await engine.tick()

        assert result.outcome is TickOutcome.SNAPSHOT_STARTED
        assert probe.triggered == ["snapshot"]
        assert probe.queries.count("snapshot-list") == 2

    @pytest.mark.asyncio
    async def test_trigger_failure_leaves_marker(self, primary_config, admin, markers):
        """A rejected snapshot request does not mark anything pending."""
        await markers.write(Role.PRIMARY, "snapshot_a")
        await markers.write(Role.SECONDARY, "snapshot_a")
        probe = InMemoryStatusProbe(snapshots=["snapshot_a"])
        probe.fail_triggers = True
        engine = self.make_engine(primary_config, probe, admin, markers)

        with pytest.raises(ProbeError):
            await engine.tick()

        assert markers.read(Role.PRIMARY).value == "snapshot_a"

    @pytest.mark.asyncio
    async def test_marker_write_failure_is_fatal(self, primary_config, admin, tmp_path):
        markers = MarkerStore(tmp_path / "not-mounted")
        engine = self.make_engine(primary_config, InMemoryStatusProbe(), admin, markers)

        with pytest.raises(MarkerWriteError):
            await engine.tick()

    @pytest.mark.asyncio
    async def test_convergence_cycle(self, primary_config, admin, markers):
        """Marker goes absent -> pending -> completed -> pending over a cycle."""
        probe = InMemoryStatusProbe()
        engine = self.make_engine(primary_config, probe, admin, markers)
        seen = [markers.read(Role.PRIMARY)]

        assert (await engine.tick()).outcome is TickOutcome.SNAPSHOT_STARTED
        seen.append(markers.read(Role.PRIMARY))

        # snapshot still running
        assert (await engine.tick()).outcome is TickOutcome.WAITING

        probe.complete_snapshot("snapshot_a")
        assert (await engine.tick()).outcome is TickOutcome.WAITING
        seen.append(markers.read(Role.PRIMARY))

        # secondary restores it
        await markers.write(Role.SECONDARY, "snapshot_a")
        result = await engine.tick()
        seen.append(markers.read(Role.PRIMARY))

        assert result.outcome is TickOutcome.SNAPSHOT_STARTED
        assert probe.triggered == ["snapshot", "snapshot"]
        assert [str(m) for m in seen] == ["<absent>", "<pending>", "snapshot_a", "<pending>"]


class TestPrimaryTickWithEventsService:
    """Primary ticks driven through the events-service control script."""

    RUNNING_FIRST_SNAPSHOT = "Index  State        Snapshot\n1      IN_PROGRESS  snapshot_a   2024-01-01T00:00:00Z\n"

    @pytest.fixture
    def es_path(self, cluster_dirs):
        path = cluster_dirs["primary_es_path"]
        install_events_service(path)
        return path

    def make_engine(self, config):
        probe = EventsServiceProbe(config.node, timeout_seconds=10)
        return ReconciliationEngine(config, probe, InMemoryIndexAdminClient(), MarkerStore.from_config(config))

    @pytest.mark.asyncio
    async def test_running_first_snapshot_waits(self, primary_config, es_path):
        """A first snapshot listed without an id yet is waited on."""
        set_output(es_path, "snapshot-list", self.RUNNING_FIRST_SNAPSHOT)
        set_output(es_path, "snapshot-status", "Snapshot state is STARTED\n")
        engine = self.make_engine(primary_config)

        result = await engine.tick()

        assert result.outcome is TickOutcome.WAITING
        assert calls(es_path) == ["snapshot-list", "snapshot-status"]

    @pytest.mark.asyncio
    async def test_finished_snapshot_without_id_is_fatal(self, primary_config, es_path):
        """A finished snapshot must be listed with an id."""
        await MarkerStore.from_config(primary_config).write(Role.PRIMARY, "")
        set_output(es_path, "snapshot-list", self.RUNNING_FIRST_SNAPSHOT)
        set_output(es_path, "snapshot-status", "Snapshot state is SUCCESS\n")
        engine = self.make_engine(primary_config)

        with pytest.raises(ProbeError) as exc_info:
            await engine.tick()

        assert "no latest snapshot id" in exc_info.value.message
        assert "snapshot-run" not in calls(es_path)


class TestRepositoryConfiguration:
    """Tests for snapshot repository registration."""

    @pytest.mark.asyncio
    async def test_primary_registers_read_write(self, primary_config):
        admin = InMemoryIndexAdminClient()
        engine = ReconciliationEngine(
            primary_config, InMemoryStatusProbe(), admin, MarkerStore.from_config(primary_config)
        )

        await engine.configure_repository()

        assert admin.repositories == {
            "dr_repo": {"location": primary_config.node.repo_path, "readonly": False}
        }

    @pytest.mark.asyncio
    async def test_secondary_registers_read_only(self, secondary_config):
        admin = InMemoryIndexAdminClient()
        engine = ReconciliationEngine(
            secondary_config, InMemoryStatusProbe(), admin, MarkerStore.from_config(secondary_config)
        )

        await engine.configure_repository()

        assert admin.repositories["dr_repo"]["readonly"] is True
        assert admin.repositories["dr_repo"]["location"] == secondary_config.node.repo_path

    @pytest.mark.asyncio
    async def test_cleanup_skips_registration(self, cleanup_config):
        admin = InMemoryIndexAdminClient()
        engine = ReconciliationEngine(
            cleanup_config, InMemoryStatusProbe(), admin, MarkerStore.from_config(cleanup_config)
        )

        await engine.configure_repository()

        assert admin.calls == []
