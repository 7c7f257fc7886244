"""Snapshot differ: slot-level changes per zone/day and notification event detection."""

from __future__ import annotations

from collections.abc import Iterable

from .model import (
    HOURS_PER_DAY,
    DayAppeared,
    NotificationEvent,
    ScheduleSnapshot,
    SlotChange,
    SlotsChanged,
)


def diff_slots(
    old: ScheduleSnapshot | None, new: ScheduleSnapshot, day_key: int, zone: str
) -> list[SlotChange]:
    """Return slot changes for one zone/day, ordered by ascending hour.

    - No previous snapshot means baseline: nothing to report.
    - Hours absent from the new snapshot are never reported.
    - When the old snapshot already had this zone/day, an hour that was absent
      there and is now filled in is not a change. When the old snapshot had no
      vector for this zone/day at all, every published hour is reported with
      an absent old status.
    """

    if old is None:
        return []
    new_slots = new.zone_slots(day_key, zone)
    if new_slots is None:
        return []
    old_slots = old.zone_slots(day_key, zone)

    changes: list[SlotChange] = []
    for hour in range(1, HOURS_PER_DAY + 1):
        new_status = new_slots[hour - 1]
        if new_status is None:
            continue
        if old_slots is None:
            changes.append(SlotChange(hour=hour, old=None, new=new_status))
            continue
        old_status = old_slots[hour - 1]
        if old_status is None or old_status == new_status:
            continue
        changes.append(SlotChange(hour=hour, old=old_status, new=new_status))
    return changes


def day_appeared(old: ScheduleSnapshot | None, new: ScheduleSnapshot, day_key: int) -> bool:
    """True only when `day_key` goes from absent in `old` to present in `new`."""
    if old is None:
        return False
    return (not old.has_day(day_key)) and new.has_day(day_key)


def detect_events(
    old: ScheduleSnapshot | None, new: ScheduleSnapshot, zones: Iterable[str]
) -> list[NotificationEvent]:
    """Build notification events for the given zones.

    Zones are processed in ascending order; within a zone today comes before
    tomorrow. A freshly published day yields one DayAppeared summary instead of
    per-hour changes.
    """

    if old is None:
        return []
    events: list[NotificationEvent] = []
    for zone in sorted(set(zones)):
        for day_key in (new.today, new.tomorrow):
            if new.zone_slots(day_key, zone) is None:
                continue
            if day_appeared(old, new, day_key):
                events.append(DayAppeared(zone=zone, day_key=day_key))
                continue
            changes = diff_slots(old, new, day_key, zone)
            if changes:
                events.append(SlotsChanged(zone=zone, day_key=day_key, changes=tuple(changes)))
    return events


def count_changes(events: Iterable[NotificationEvent]) -> int:
    total = 0
    for ev in events:
        total += len(ev.changes) if isinstance(ev, SlotsChanged) else 1
    return total
