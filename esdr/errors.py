"""
Error types for esdr.

This module defines all exception types raised by the coordinator:
- EsdrError: Base exception
- ConfigurationError: Missing or invalid configuration
- ExternalCallError: An external collaborator failed or answered unexpectedly
  - ProbeError: events-service command failed or printed unrecognized text
  - AdminApiError: Index administration API call was not acknowledged
  - MarkerWriteError: Marker file could not be written (locally or remotely)

Waiting for an in-flight snapshot or restore is not an error; ticks report
it through their result instead.

Invariants:
    - All errors inherit from EsdrError
    - ConfigurationError is raised before any tick runs
    - ExternalCallError aborts the current tick
"""

from __future__ import annotations

from typing import Any


class EsdrError(Exception):
    """Base exception for all esdr errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "ESDR_ERROR"
        self.details = details or {}


class ConfigurationError(EsdrError):
    """Configuration is missing, unreadable or invalid.

    Raised when:
    - The config file does not exist or cannot be read
    - A key required by the active mode is missing
    - A value cannot be parsed
    """

    def __init__(self, message: str, key: str | None = None) -> None:
        super().__init__(message, code="CONFIGURATION_ERROR", details={"key": key})
        self.key = key


class ExternalCallError(EsdrError):
    """An external collaborator returned a non-success answer."""

    def __init__(
        self,
        message: str,
        code: str = "EXTERNAL_CALL_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code=code, details=details)


class ProbeError(ExternalCallError):
    """The events-service command failed or its output was not recognized.

    Attributes:
        action: events-service action that was run (snapshot-list, ...)
        output: Raw command output, if any
    """

    def __init__(self, message: str, action: str | None = None, output: str | None = None) -> None:
        super().__init__(
            message,
            code="PROBE_ERROR",
            details={"action": action, "output": output},
        )
        self.action = action
        self.output = output


class AdminApiError(ExternalCallError):
    """An index administration API call failed.

    Attributes:
        method: HTTP method
        path: Request path relative to the API base URL
        status_code: HTTP status code, None on transport failure
        body: Response body, if any
    """

    def __init__(
        self,
        message: str,
        method: str,
        path: str,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(
            message,
            code="ADMIN_API_ERROR",
            details={
                "method": method,
                "path": path,
                "status_code": status_code,
                "body": body,
            },
        )
        self.method = method
        self.path = path
        self.status_code = status_code
        self.body = body


class MarkerWriteError(ExternalCallError):
    """A marker file could not be written."""

    def __init__(self, message: str, path: str, host: str | None = None) -> None:
        super().__init__(
            message,
            code="MARKER_WRITE_ERROR",
            details={"path": path, "host": host},
        )
        self.path = path
        self.host = host
