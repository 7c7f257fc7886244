"""Exceptions raised by the schedule monitor core."""

from __future__ import annotations


class MonitorError(Exception):
    pass


class MalformedSnapshotError(MonitorError):
    """Fetched payload does not have the expected schedule structure."""
