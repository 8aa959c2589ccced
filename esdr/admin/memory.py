"""
In-memory index administration client for testing.

Keeps just enough cluster state (indices, ILM, repositories, snapshots) to
check what the reconciliation engine did, and records every call in order.
"""

from __future__ import annotations

import fnmatch
import logging
from typing import Any

from ..errors import AdminApiError

logger = logging.getLogger(__name__)


class InMemoryIndexAdminClient:
    """In-memory implementation of IndexAdminClient.

    Attributes:
        indices: Index name -> open flag
        ilm_running: Whether index lifecycle management is running
        repositories: Repository name -> settings
        snapshots: Repository name -> snapshot ids
        calls: Every call as (method, argument...) tuples, in order
        fail_on: Method names that raise AdminApiError when called
    """

    def __init__(self, indices: list[str] | None = None) -> None:
        self.indices: dict[str, bool] = {name: True for name in indices or []}
        self.ilm_running = True
        self.repositories: dict[str, dict[str, Any]] = {}
        self.snapshots: dict[str, list[str]] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.fail_on: set[str] = set()

    def _record(self, method: str, *args: Any) -> None:
        self.calls.append((method, *args))
        if method in self.fail_on:
            raise AdminApiError(
                f"ES request {method} failed: simulated failure", method="POST", path=method
            )

    async def register_repository(self, name: str, location: str, readonly: bool) -> None:
        self._record("register_repository", name, location, readonly)
        self.repositories[name] = {"location": location, "readonly": readonly}

    async def list_indices(self, pattern: str) -> list[str]:
        self._record("list_indices", pattern)
        return [name for name in self.indices if fnmatch.fnmatchcase(name, pattern)]

    async def close_index(self, index: str) -> None:
        self._record("close_index", index)
        self.indices[index] = False

    async def open_index(self, index: str) -> None:
        self._record("open_index", index)
        self.indices[index] = True

    async def start_ilm(self) -> None:
        self._record("start_ilm")
        self.ilm_running = True

    async def stop_ilm(self) -> None:
        self._record("stop_ilm")
        self.ilm_running = False

    async def delete_snapshot(self, repository: str, snapshot: str) -> None:
        self._record("delete_snapshot", repository, snapshot)
        stored = self.snapshots.get(repository, [])
        if snapshot in stored:
            stored.remove(snapshot)

    # Testing helpers

    def call_names(self) -> list[str]:
        """Names of the calls made, in order."""
        return [call[0] for call in self.calls]
