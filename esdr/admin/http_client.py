"""
HTTP client for the index administration API.

Talks to the Elasticsearch-compatible API embedded in the Events Service
with httpx.

Endpoints used:
    PUT    _snapshot/<repo>                 register repository
    GET    _cat/indices/<pattern>           list indices
    POST   <index>/_close, <index>/_open    close/open an index
    POST   _ilm/start, _ilm/stop            index lifecycle management
    DELETE _snapshot/<repo>/<snapshot>      delete a snapshot

Invariants:
    - Mutating calls succeed only with "acknowledged": true in the response
    - Transport errors and non-2xx answers raise AdminApiError
    - No call is retried
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from ..errors import AdminApiError

logger = logging.getLogger(__name__)


class HttpIndexAdminClient:
    """IndexAdminClient implementation over HTTP.

    Attributes:
        base_url: Base URL of the administration API

    Example:
        >>> async with HttpIndexAdminClient("http://localhost:9200") as admin:
        ...     await admin.stop_ilm()
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Base URL of the administration API
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    async def __aenter__(self) -> HttpIndexAdminClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
        acknowledged: bool = True,
    ) -> Any:
        """Send one request and return its decoded JSON body.

        Args:
            method: HTTP method
            path: Path relative to the base URL
            json: Optional JSON body
            params: Optional query parameters
            acknowledged: Require "acknowledged": true in the response

        Raises:
            AdminApiError: On transport failure, non-2xx status, a body that
                is not JSON, or a missing acknowledgement.
        """
        logger.debug(f"ES request {method} {path}")
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.HTTPError as e:
            raise AdminApiError(
                f"ES request {path} ({method}) failed: {e}", method=method, path=path
            ) from e

        if response.is_error:
            raise AdminApiError(
                f"ES request {path} ({method}) failed: HTTP {response.status_code} {response.text}",
                method=method,
                path=path,
                status_code=response.status_code,
                body=response.text,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise AdminApiError(
                f"ES request {path} ({method}) returned invalid JSON: {response.text}",
                method=method,
                path=path,
                status_code=response.status_code,
                body=response.text,
            ) from e

        if acknowledged and not (isinstance(body, dict) and body.get("acknowledged") is True):
            raise AdminApiError(
                f"ES request {path} ({method}) failed: {response.text}",
                method=method,
                path=path,
                status_code=response.status_code,
                body=response.text,
            )
        return body

    async def register_repository(self, name: str, location: str, readonly: bool) -> None:
        await self._request(
            "PUT",
            f"_snapshot/{quote(name, safe='')}",
            json={
                "type": "fs",
                "settings": {
                    "location": location,
                    "readonly": readonly,
                },
            },
        )
        logger.info(
            f"Snapshot repository {name} registered",
            extra={"location": location, "readonly": readonly},
        )

    async def list_indices(self, pattern: str) -> list[str]:
        body = await self._request(
            "GET",
            f"_cat/indices/{pattern}",
            params={"format": "json", "expand_wildcards": "all", "h": "index"},
            acknowledged=False,
        )
        if not isinstance(body, list):
            raise AdminApiError(
                f"Unexpected index listing for {pattern}: {body!r}",
                method="GET",
                path=f"_cat/indices/{pattern}",
            )
        return [row["index"] for row in body if isinstance(row, dict) and row.get("index")]

    async def close_index(self, index: str) -> None:
        await self._request("POST", f"{quote(index, safe='')}/_close")
        logger.debug(f"Closed index {index}")

    async def open_index(self, index: str) -> None:
        await self._request("POST", f"{quote(index, safe='')}/_open")
        logger.debug(f"Opened index {index}")

    async def start_ilm(self) -> None:
        await self._request("POST", "_ilm/start")
        logger.debug("ILM started")

    async def stop_ilm(self) -> None:
        await self._request("POST", "_ilm/stop")
        logger.debug("ILM stopped")

    async def delete_snapshot(self, repository: str, snapshot: str) -> None:
        await self._request(
            "DELETE", f"_snapshot/{quote(repository, safe='')}/{quote(snapshot, safe='')}"
        )
