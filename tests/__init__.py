"""
esdr Test Suite.

This package contains:
- unit/: Unit tests (in-memory fakes, mock HTTP transport, fake scripts)
- integration/: Whole replication cycles driven through the engine and CLI
"""
