"""
Index administration client for esdr.

- HttpIndexAdminClient: Elasticsearch-compatible HTTP API (httpx)
- InMemoryIndexAdminClient: recording fake for tests
"""

from .base import IndexAdminClient
from .http_client import HttpIndexAdminClient
from .memory import InMemoryIndexAdminClient

__all__ = [
    "IndexAdminClient",
    "HttpIndexAdminClient",
    "InMemoryIndexAdminClient",
]
