"""
Snapshot id marker files.

Each role records the id of the last snapshot it fully processed in a
one-line file inside the snapshot repository:

    <repo>/primary_snapshot.id     last snapshot taken by the primary
    <repo>/secondary_snapshot.id   last snapshot restored by the secondary

File states:
    absent      never completed anything
    empty line  an operation is in flight, id pending
    id          last operation known to be complete

In remote mode the write runs over ssh on the peer host against the
peer's repository path, for nodes that mount the repository read-only.

Invariants:
    - Markers are read and written by one tick at a time per process
    - Local writes are atomic (temp file + rename) and fsynced, file then
      directory, before write() returns
    - A failed write raises MarkerWriteError; the tick must not continue
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
from dataclasses import dataclass
from pathlib import Path

from ..config import DEFAULT_SSH_COMMAND, DrConfig, PeerConfig, Role
from ..errors import ExternalCallError, MarkerWriteError

logger = logging.getLogger(__name__)

MARKER_FILENAMES = {
    Role.PRIMARY: "primary_snapshot.id",
    Role.SECONDARY: "secondary_snapshot.id",
}


def marker_filename(role: Role) -> str:
    try:
        return MARKER_FILENAMES[role]
    except KeyError:
        raise ValueError(f"No marker file for role {role.value}") from None


@dataclass(frozen=True)
class Marker:
    """Content of a marker file, None when the file does not exist."""

    value: str | None

    @classmethod
    def absent(cls) -> Marker:
        return cls(None)

    @property
    def is_absent(self) -> bool:
        return self.value is None

    @property
    def is_pending(self) -> bool:
        """An operation started and its snapshot id is not recorded yet."""
        return self.value == ""

    @property
    def is_completed(self) -> bool:
        return bool(self.value)

    def matches(self, snapshot_id: str | None) -> bool:
        """Whether this marker records ``snapshot_id`` as completed."""
        return self.is_completed and self.value == snapshot_id

    def __str__(self) -> str:
        if self.is_absent:
            return "<absent>"
        return self.value or "<pending>"


class MarkerStore:
    """Reads and writes marker files for the executing node.

    Attributes:
        repo_path: Snapshot repository directory on this node
        peer: Peer host and repository path for remote writes

    Example:
        >>> store = MarkerStore("/mnt/es-repo")
        >>> await store.write(Role.PRIMARY, "")
        >>> store.read(Role.PRIMARY).is_pending
        True
    """

    def __init__(
        self,
        repo_path: str | Path,
        peer: PeerConfig | None = None,
        ssh_command: tuple[str, ...] = DEFAULT_SSH_COMMAND,
        ssh_timeout: float = 60.0,
    ) -> None:
        self.repo_path = Path(repo_path)
        self.peer = peer
        self.ssh_command = tuple(ssh_command)
        self.ssh_timeout = ssh_timeout

    @classmethod
    def from_config(cls, config: DrConfig) -> MarkerStore:
        return cls(
            repo_path=config.node.repo_path,
            peer=config.peer,
            ssh_command=config.ssh_command,
            ssh_timeout=config.timeouts.ssh_seconds,
        )

    def path_for(self, role: Role) -> Path:
        """Local path of ``role``'s marker file."""
        return self.repo_path / marker_filename(role)

    def read(self, role: Role) -> Marker:
        """Read ``role``'s marker from the local repository path.

        Raises:
            ExternalCallError: If the file exists but cannot be read.
        """
        path = self.path_for(role)
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return Marker.absent()
        except OSError as e:
            raise ExternalCallError(
                f"Cannot read marker file {path}: {e}",
                code="MARKER_READ_ERROR",
                details={"path": str(path)},
            ) from e

        lines = content.splitlines()
        return Marker(lines[0].strip() if lines else "")

    async def write(self, role: Role, value: str, remote: bool = False) -> None:
        """Write ``role``'s marker.

        Args:
            role: Role owning the marker
            value: Snapshot id, or "" for an operation in flight
            remote: Write on the peer host instead of locally

        Raises:
            MarkerWriteError: If the write fails.
        """
        if "\n" in value or "\r" in value:
            raise ValueError(f"Marker value must be a single line: {value!r}")

        if remote:
            logger.info("Updating snapshot id file remotely.")
            await self._write_remote(role, value)
        else:
            logger.info("Updating snapshot id file locally.")
            self._write_local(self.path_for(role), value)

        logger.debug(f"Marker {marker_filename(role)} set to {Marker(value)}")

    def _write_local(self, path: Path, value: str) -> None:
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as handle:
                handle.write(f"{value}\n")
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, path)
        except OSError as e:
            raise MarkerWriteError(f"Command failed : {e}", path=str(path)) from e
        self._fsync_dir(path.parent)

    @staticmethod
    def _fsync_dir(directory: Path) -> None:
        try:
            dir_fd = os.open(directory, os.O_RDONLY)
        except OSError as e:
            logger.debug(f"Cannot open directory {directory} for fsync: {e}")
            return
        try:
            os.fsync(dir_fd)
        except OSError:
            # not supported on every filesystem
            logger.debug(f"Cannot fsync directory {directory}")
        finally:
            os.close(dir_fd)

    async def _write_remote(self, role: Role, value: str) -> None:
        if self.peer is None:
            raise MarkerWriteError(
                "Remote marker update requested but no peer host is configured",
                path=marker_filename(role),
            )

        path = Path(self.peer.repo_path) / marker_filename(role)
        tmp_path = f"{path}.tmp"
        script = (
            f"printf '%s\\n' {shlex.quote(value)} > {shlex.quote(tmp_path)}"
            f" && mv -f {shlex.quote(tmp_path)} {shlex.quote(str(path))}"
        )
        cmd = [*self.ssh_command, self.peer.host, script]

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise MarkerWriteError(
                f"Remote command failed (Is passwordless ssh enabled?) : {e}",
                path=str(path),
                host=self.peer.host,
            ) from e

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self.ssh_timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise MarkerWriteError(
                f"Remote command timed out after {self.ssh_timeout}s",
                path=str(path),
                host=self.peer.host,
            )

        if proc.returncode != 0:
            output = stdout.decode("utf-8", errors="replace").strip()
            raise MarkerWriteError(
                f"Remote command failed (Is passwordless ssh enabled?) : {output}",
                path=str(path),
                host=self.peer.host,
            )
