"""
Protocol for the index administration API.

The reconciliation engine uses this interface for every side effect on a
cluster other than triggering snapshots and restores.

Invariants:
    - Every mutating call returns only after the cluster acknowledged it
    - An unacknowledged call raises AdminApiError
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Protocol, runtime_checkable


@runtime_checkable
class IndexAdminClient(Protocol):
    """Protocol for index administration backends."""

    @abstractmethod
    async def register_repository(self, name: str, location: str, readonly: bool) -> None:
        """Create or update a filesystem snapshot repository.

        Args:
            name: Repository name
            location: Repository directory as seen by the cluster
            readonly: Register the repository read-only
        """
        ...

    @abstractmethod
    async def list_indices(self, pattern: str) -> list[str]:
        """List index names matching ``pattern``, hidden indices included."""
        ...

    @abstractmethod
    async def close_index(self, index: str) -> None:
        ...

    @abstractmethod
    async def open_index(self, index: str) -> None:
        ...

    @abstractmethod
    async def start_ilm(self) -> None:
        """Start index lifecycle management."""
        ...

    @abstractmethod
    async def stop_ilm(self) -> None:
        """Stop index lifecycle management."""
        ...

    @abstractmethod
    async def delete_snapshot(self, repository: str, snapshot: str) -> None:
        ...
