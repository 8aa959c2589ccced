"""
Status probe backed by the Events Service control script.

Every call runs::

    <es_path>/processor/bin/events-service.sh <action> \\
        -p <es_path>/processor/conf/events-service-api-store.properties

and parses its combined stdout/stderr with esdr.probe.parser.

Invariants:
    - Commands are awaited to completion before returning
    - A command that cannot start or exceeds its timeout raises ProbeError
    - Status commands are judged by their text, not their exit code
"""

from __future__ import annotations

import asyncio
import logging

from ..config import NodeConfig
from ..errors import ProbeError
from .base import RestoreStatus, SnapshotListing, SnapshotStatus
from .parser import (
    is_request_accepted,
    parse_restore_status,
    parse_snapshot_listing,
    parse_snapshot_status,
)

logger = logging.getLogger(__name__)


class EventsServiceProbe:
    """StatusProbe implementation running ``events-service.sh``.

    Attributes:
        node: Installation whose control script is run
        timeout_seconds: Maximum time for one command

    Example:
        >>> probe = EventsServiceProbe(config.node)
        >>> status = await probe.snapshot_status()
    """

    def __init__(self, node: NodeConfig, timeout_seconds: float = 600.0) -> None:
        self.node = node
        self.timeout_seconds = timeout_seconds

    async def _run(self, action: str) -> str:
        """Run one events-service action and return its output."""
        cmd = [str(self.node.command_path), action, "-p", str(self.node.properties_path)]
        logger.debug(f"Running {' '.join(cmd)}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise ProbeError(f"Cannot run {cmd[0]}: {e}", action=action) from e

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise ProbeError(
                f"events-service {action} timed out after {self.timeout_seconds}s",
                action=action,
            )

        output = stdout.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            logger.debug(f"events-service {action} exited with {proc.returncode}")
        return output

    async def list_snapshots(self) -> SnapshotListing:
        output = await self._run("snapshot-list")
        listing = parse_snapshot_listing(output)
        if listing.exists and listing.latest_id is None:
            logger.debug(f"No completed snapshot id in listing: {output.strip()}")
        return listing

    async def snapshot_status(self) -> SnapshotStatus:
        return parse_snapshot_status(await self._run("snapshot-status"))

    async def restore_status(self) -> RestoreStatus:
        return parse_restore_status(await self._run("snapshot-restore-status"))

    async def trigger_snapshot(self) -> None:
        output = await self._run("snapshot-run")
        if not is_request_accepted(output):
            raise ProbeError(f"Snapshot failed: {output.strip()}", action="snapshot-run", output=output)
        logger.info("Snapshot initiated successfully.")

    async def trigger_restore(self) -> None:
        output = await self._run("snapshot-restore")
        if not is_request_accepted(output):
            raise ProbeError(
                f"Snapshot restore failed: {output.strip()}",
                action="snapshot-restore",
                output=output,
            )
        logger.info("Snapshot restore initiated successfully.")
