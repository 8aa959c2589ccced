"""
Parsers for events-service snapshot command output.

All matching against engine text lives here. The sentinels are the ones
printed by the Events Service ``snapshot-*`` commands; output is matched
after collapsing whitespace, the same way the shell tooling around these
commands has always read it.
"""

from __future__ import annotations

import re

from .base import RestoreStatus, SnapshotListing, SnapshotStatus

NO_SNAPSHOTS_SENTINEL = "No snapshots taken"
REQUEST_ACCEPTED_SENTINEL = "request executed successfully"
RESTORE_COMPLETE_SENTINEL = "Restore is complete"

_LATEST_ID_RE = re.compile(r"\b1\.\s+(snapshot\S+)")
_SNAPSHOT_STATE_RE = re.compile(r"Snapshot state is (\w+)")
_RESTORE_NOT_STARTED_RE = re.compile(r"no (snapshot )?restore|not started", re.IGNORECASE)
_SUCCESS_ROW_RE = re.compile(r"^\S+\s+\S+\s+(\S+)\s")


def _collapse(text: str) -> str:
    return " ".join(text.split())


def parse_snapshot_listing(text: str) -> SnapshotListing:
    """Parse ``snapshot-list`` output.

    The latest id comes from the ``1. snapshot...`` entry; the full listing
    is the third column of every ``SUCCESS`` row, in printed order. When
    no numbered entry is printed the first ``SUCCESS`` row is the latest.
    """
    if NO_SNAPSHOTS_SENTINEL in _collapse(text):
        return SnapshotListing.empty()

    match = _LATEST_ID_RE.search(_collapse(text))
    latest_id = match.group(1) if match else None

    snapshot_ids = []
    for line in text.splitlines():
        if "SUCCESS" not in line:
            continue
        row = _SUCCESS_ROW_RE.match(line.strip() + " ")
        if row:
            snapshot_ids.append(row.group(1))

    if latest_id is None and snapshot_ids:
        latest_id = snapshot_ids[0]

    return SnapshotListing(exists=True, latest_id=latest_id, snapshot_ids=tuple(snapshot_ids))


def parse_snapshot_status(text: str) -> SnapshotStatus:
    """Parse ``snapshot-status`` output.

    Anything other than ``Snapshot state is SUCCESS`` is reported as in
    progress, tagged with the state word (``UNKNOWN`` when there is none).
    """
    flat = _collapse(text)
    if NO_SNAPSHOTS_SENTINEL in flat:
        return SnapshotStatus.no_snapshots()

    match = _SNAPSHOT_STATE_RE.search(flat)
    if match and match.group(1) == "SUCCESS":
        return SnapshotStatus.completed()
    return SnapshotStatus.in_progress(match.group(1) if match else "UNKNOWN")


def parse_restore_status(text: str) -> RestoreStatus:
    """Parse ``snapshot-restore-status`` output."""
    flat = _collapse(text)
    if RESTORE_COMPLETE_SENTINEL in flat:
        return RestoreStatus.COMPLETE
    if _RESTORE_NOT_STARTED_RE.search(flat):
        return RestoreStatus.NOT_STARTED
    return RestoreStatus.IN_PROGRESS


def is_request_accepted(text: str) -> bool:
    """Whether ``snapshot-run``/``snapshot-restore`` accepted the request."""
    return REQUEST_ACCEPTED_SENTINEL in _collapse(text)
