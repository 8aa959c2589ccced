"""
Shared fixtures for esdr tests.

Lays out the install directory and snapshot repository of both clusters
under tmp_path, with the matching config values.
"""

import pytest

from esdr.config import DrConfig, Role


@pytest.fixture
def cluster_dirs(tmp_path):
    """Install directories and repository paths of both clusters."""
    dirs = {
        "primary_es_path": tmp_path / "primary" / "events-service",
        "primary_es_repo_path": tmp_path / "primary" / "repo",
        "secondary_es_path": tmp_path / "secondary" / "events-service",
        "secondary_es_repo_path": tmp_path / "secondary" / "repo",
    }
    for path in dirs.values():
        path.mkdir(parents=True)
    return dirs


@pytest.fixture
def config_values(cluster_dirs):
    """Parsed config file values for both clusters."""
    values = {key: str(path) for key, path in cluster_dirs.items()}
    values.update(
        {
            "primary_es_url": "http://primary:9200",
            "secondary_es_url": "http://secondary:9200",
            "es_repo_name": "dr_repo",
            "primary_host": "primary.example.com",
            "secondary_host": "secondary.example.com",
        }
    )
    return values


@pytest.fixture
def config_file(tmp_path, config_values):
    """Config file on disk holding config_values."""
    path = tmp_path / "esdr.conf"
    lines = ["# esdr test configuration"]
    lines += [f"{key}={value}" for key, value in config_values.items()]
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def primary_config(config_values):
    return DrConfig.from_values(config_values, Role.PRIMARY)


@pytest.fixture
def secondary_config(config_values):
    return DrConfig.from_values(config_values, Role.SECONDARY)


@pytest.fixture
def cleanup_config(config_values):
    return DrConfig.from_values(config_values, Role.CLEANUP)
