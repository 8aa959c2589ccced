"""
Marker files: the cross-node handshake between primary and secondary.
"""

from .store import MARKER_FILENAMES, Marker, MarkerStore, marker_filename

__all__ = ["Marker", "MarkerStore", "MARKER_FILENAMES", "marker_filename"]
