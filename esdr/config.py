"""
Configuration management for esdr.

Configuration comes from a shell-style key/value file shared by both
clusters (the same file can be deployed on the primary and the secondary
host). Only the keys needed by the active mode are required.

Example:
    primary_es_path=/opt/appdynamics/events-service
    primary_es_repo_path=/mnt/es-repo
    primary_es_url=http://primary:9200
    secondary_es_path=/opt/appdynamics/events-service
    secondary_es_repo_path=/mnt/es-repo
    secondary_es_url=http://secondary:9200
    es_repo_name=dr_repo
    primary_host=primary.example.com
    secondary_host=secondary.example.com

Invariants:
    - Configuration is loaded once at startup and never mutated
    - Every required key for the active mode is checked before any tick runs
    - Missing or invalid configuration raises ConfigurationError

How to change safely:
    - Add new keys as optional with defaults
    - Keep key names compatible with existing deployments' config files
"""

from __future__ import annotations

import io
import logging
import os
import shlex
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Mapping

from dotenv import dotenv_values

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_FREQUENCY_SECONDS = 3600
DEFAULT_KEEP = 1
DEFAULT_CLOSE_INDEX_PATTERN = "*"
DEFAULT_SSH_COMMAND = ("ssh", "-o", "BatchMode=yes")

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "WARN", "ERROR", "CRITICAL")
_LOG_FORMATS = ("text", "json")


class Role(Enum):
    """Run mode of the process."""

    PRIMARY = "primary"
    SECONDARY = "secondary"
    CLEANUP = "cleanup"

    @property
    def side(self) -> str:
        """Config key prefix of the cluster this role runs against."""
        return "secondary" if self is Role.SECONDARY else "primary"

    @property
    def peer_side(self) -> str:
        """Config key prefix of the other cluster."""
        return "primary" if self is Role.SECONDARY else "secondary"


def parse_config_text(text: str) -> dict[str, str]:
    """Parse shell-style ``key=value`` lines with python-dotenv.

    Blank lines and ``#`` comments are skipped, an ``export`` prefix is
    accepted, values may be quoted and ``${VAR}`` references expand from
    earlier keys or the environment. Lines python-dotenv cannot parse are
    skipped with a warning; a key without a value reads as empty.
    """
    values = dotenv_values(stream=io.StringIO(text), interpolate=True)
    return {key: value or "" for key, value in values.items()}


def load_config_file(path: str | Path) -> dict[str, str]:
    """Read and parse a config file.

    Raises:
        ConfigurationError: If the file cannot be read.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"{path} is not readable: {e}") from e
    return parse_config_text(text)


def _require(values: Mapping[str, str], key: str) -> str:
    value = values.get(key, "").strip()
    if not value:
        raise ConfigurationError(f"Missing required config entry: {key}", key=key)
    return value


def _float(values: Mapping[str, str], key: str, default: float) -> float:
    raw = values.get(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid number for {key}: {raw!r}", key=key) from e


@dataclass(frozen=True)
class NodeConfig:
    """One cluster's Events Service installation.

    Attributes:
        es_path: Events Service install directory
        repo_path: Snapshot repository directory as seen from this node
        es_url: Base URL of the index administration API
    """

    es_path: str
    repo_path: str
    es_url: str

    @property
    def command_path(self) -> Path:
        """The events-service control script."""
        return Path(self.es_path) / "processor" / "bin" / "events-service.sh"

    @property
    def properties_path(self) -> Path:
        """Properties file passed to every events-service command."""
        return Path(self.es_path) / "processor" / "conf" / "events-service-api-store.properties"

    @classmethod
    def from_values(cls, values: Mapping[str, str], side: str) -> NodeConfig:
        """Load the ``<side>_es_*`` keys."""
        return cls(
            es_path=_require(values, f"{side}_es_path"),
            repo_path=_require(values, f"{side}_es_repo_path"),
            es_url=_require(values, f"{side}_es_url").rstrip("/"),
        )


@dataclass(frozen=True)
class PeerConfig:
    """Peer host used for remote marker writes.

    Attributes:
        host: ssh destination of the peer node
        repo_path: Snapshot repository directory as seen from the peer
    """

    host: str
    repo_path: str

    @classmethod
    def from_values(cls, values: Mapping[str, str], side: str) -> PeerConfig:
        return cls(
            host=_require(values, f"{side}_host"),
            repo_path=_require(values, f"{side}_es_repo_path"),
        )


@dataclass(frozen=True)
class TimeoutConfig:
    """Timeouts for blocking calls, in seconds.

    Attributes:
        http_seconds: Index administration API requests
        command_seconds: events-service command invocations
        ssh_seconds: Remote marker writes
    """

    http_seconds: float = 30.0
    command_seconds: float = 600.0
    ssh_seconds: float = 60.0

    @classmethod
    def from_values(cls, values: Mapping[str, str]) -> TimeoutConfig:
        return cls(
            http_seconds=_float(values, "http_timeout", 30.0),
            command_seconds=_float(values, "command_timeout", 600.0),
            ssh_seconds=_float(values, "ssh_timeout", 60.0),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Values from the config file win over the LOG_LEVEL, LOG_FORMAT and
    LOG_FILE environment variables.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARN, ERROR)
        log_format: Log format (text, json)
        log_file: Optional file receiving a copy of every log line
    """

    log_level: str = "INFO"
    log_format: str = "text"
    log_file: str | None = None

    @classmethod
    def from_values(cls, values: Mapping[str, str]) -> ObservabilityConfig:
        return cls(
            log_level=values.get("log_level") or os.getenv("LOG_LEVEL", "INFO"),
            log_format=values.get("log_format") or os.getenv("LOG_FORMAT", "text"),
            log_file=values.get("log_file") or os.getenv("LOG_FILE") or None,
        )


@dataclass(frozen=True)
class RetentionPolicy:
    """Number of most recent snapshots kept by cleanup mode."""

    keep: int = DEFAULT_KEEP

    def __post_init__(self) -> None:
        if self.keep < 0:
            raise ConfigurationError(f"keep must be >= 0, got {self.keep}", key="keep")


@dataclass(frozen=True)
class DrConfig:
    """Complete, immutable configuration for one run.

    Attributes:
        role: Run mode
        repo_name: Snapshot repository name registered in the cluster
        node: Installation this process drives (primary side for cleanup)
        peer: Peer used for remote marker writes, set only in remote mode
        remote: Whether the secondary writes its marker through the peer
        close_index_pattern: Indices closed before a restore
        ssh_command: Command prefix for remote marker writes
        timeouts: Timeouts for blocking calls
        observability: Logging configuration
    """

    role: Role
    repo_name: str
    node: NodeConfig
    peer: PeerConfig | None = None
    remote: bool = False
    close_index_pattern: str = DEFAULT_CLOSE_INDEX_PATTERN
    ssh_command: tuple[str, ...] = DEFAULT_SSH_COMMAND
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_file(cls, path: str | Path, role: Role, remote: bool = False) -> DrConfig:
        """Load and validate configuration for ``role`` from a config file.

        Raises:
            ConfigurationError: If the file is unreadable or a required key
                for the active mode is missing.
        """
        return cls.from_values(load_config_file(path), role, remote=remote)

    @classmethod
    def from_values(
        cls, values: Mapping[str, str], role: Role, remote: bool = False
    ) -> DrConfig:
        """Build configuration from already parsed key/value pairs."""
        if remote and role is not Role.SECONDARY:
            logger.warning(f"Remote marker updates only apply to secondary mode, ignored in {role.value} mode")
            remote = False

        ssh_raw = values.get("ssh_command", "").strip()
        config = cls(
            role=role,
            repo_name=_require(values, "es_repo_name"),
            node=NodeConfig.from_values(values, role.side),
            peer=PeerConfig.from_values(values, role.peer_side) if remote else None,
            remote=remote,
            close_index_pattern=values.get("es_close_index_pattern") or DEFAULT_CLOSE_INDEX_PATTERN,
            ssh_command=tuple(shlex.split(ssh_raw)) if ssh_raw else DEFAULT_SSH_COMMAND,
            timeouts=TimeoutConfig.from_values(values),
            observability=ObservabilityConfig.from_values(values),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        if not self.node.es_url.startswith(("http://", "https://")):
            raise ConfigurationError(
                f"{self.role.side}_es_url must be an http(s) URL: {self.node.es_url!r}",
                key=f"{self.role.side}_es_url",
            )

        if self.remote and self.peer is None:
            raise ConfigurationError(
                "Remote marker updates require the peer host and repository path",
                key=f"{self.role.peer_side}_host",
            )

        for name in ("http_seconds", "command_seconds", "ssh_seconds"):
            if getattr(self.timeouts, name) <= 0:
                raise ConfigurationError(f"Timeout {name} must be positive", key=name)

        if not self.ssh_command:
            raise ConfigurationError("ssh_command must not be empty", key="ssh_command")

        if self.observability.log_level.upper() not in _LOG_LEVELS:
            raise ConfigurationError(
                f"Invalid log level {self.observability.log_level!r}", key="log_level"
            )
        if self.observability.log_format not in _LOG_FORMATS:
            raise ConfigurationError(
                f"Invalid log format {self.observability.log_format!r}. Must be one of: text, json",
                key="log_format",
            )

        if not Path(self.node.repo_path).is_dir():
            logger.warning(f"Repository path does not exist on this node: {self.node.repo_path}")

    def log_config(self) -> None:
        """Log the resolved configuration."""
        logger.debug(
            "Configuration loaded",
            extra={
                "role": self.role.value,
                "repo_name": self.repo_name,
                "es_path": self.node.es_path,
                "es_url": self.node.es_url,
                "repo_path": self.node.repo_path,
                "remote": self.remote,
                "peer_host": self.peer.host if self.peer else None,
                "close_index_pattern": self.close_index_pattern,
            },
        )
