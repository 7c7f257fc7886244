"""Outage schedule monitor: snapshot model, differ, composer, pacer and polling loop."""

from __future__ import annotations

from .diff import day_appeared, detect_events, diff_slots
from .errors import MalformedSnapshotError, MonitorError
from .formatting import compose_changes, compose_day_appeared, render_event
from .loop import CycleOutcome, CycleReport, MonitorState, ScheduleMonitor
from .model import (
    DayAppeared,
    RawStatus,
    ScheduleSnapshot,
    SlotChange,
    SlotsChanged,
    Status,
    snapshot_fingerprint,
    snapshot_from_payload,
)
from .pacer import DeliveryOutcome, DispatchReport, Pacer, dispatch

__all__ = [
    "CycleOutcome",
    "CycleReport",
    "DayAppeared",
    "DeliveryOutcome",
    "DispatchReport",
    "MalformedSnapshotError",
    "MonitorError",
    "MonitorState",
    "Pacer",
    "RawStatus",
    "ScheduleMonitor",
    "ScheduleSnapshot",
    "SlotChange",
    "SlotsChanged",
    "Status",
    "compose_changes",
    "compose_day_appeared",
    "day_appeared",
    "detect_events",
    "diff_slots",
    "dispatch",
    "render_event",
    "snapshot_fingerprint",
    "snapshot_from_payload",
]
