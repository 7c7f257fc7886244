"""Schedule snapshot model: statuses, zones, snapshot value and payload validation."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from .errors import MalformedSnapshotError

HOURS_PER_DAY = 24
DAY_SECONDS = 86400

ZONE_PREFIX = "GPV"
ALL_ZONES: tuple[str, ...] = (
    "GPV1.1",
    "GPV1.2",
    "GPV2.1",
    "GPV2.2",
    "GPV3.1",
    "GPV3.2",
    "GPV4.1",
    "GPV4.2",
    "GPV5.1",
    "GPV5.2",
    "GPV6.1",
    "GPV6.2",
)

UNKNOWN_LABEL = "❓ Невідомо"


class Status(str, Enum):
    AVAILABLE = "yes"
    UNAVAILABLE = "no"
    PARTIAL_FIRST_HALF = "first"
    PARTIAL_SECOND_HALF = "second"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: str) -> Status:
        try:
            return cls((raw or "").strip().lower())
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_partial(self) -> bool:
        return self in (Status.PARTIAL_FIRST_HALF, Status.PARTIAL_SECOND_HALF)

    @property
    def label(self) -> str:
        return _LABELS[self]

    @property
    def icon(self) -> str:
        return _ICONS[self]


_LABELS = {
    Status.AVAILABLE: "✅ Світло є",
    Status.UNAVAILABLE: "🔴 Світла НЕМАЄ",
    Status.PARTIAL_FIRST_HALF: "⚠️ Частково (перша половина)",
    Status.PARTIAL_SECOND_HALF: "⚠️ Частково (друга половина)",
    Status.UNKNOWN: UNKNOWN_LABEL,
}

_ICONS = {
    Status.AVAILABLE: "✅",
    Status.UNAVAILABLE: "🔴",
    Status.PARTIAL_FIRST_HALF: "⚠️½",
    Status.PARTIAL_SECOND_HALF: "½⚠️",
    Status.UNKNOWN: "❓",
}


@dataclass(frozen=True)
class RawStatus:
    """A status string the source published that is not one of the known values.

    Kept verbatim so a change between two unrecognized values is still a change.
    """

    raw: str

    @property
    def value(self) -> str:
        return self.raw

    @property
    def is_partial(self) -> bool:
        return False

    @property
    def label(self) -> str:
        return f"❓ {self.raw}"

    @property
    def icon(self) -> str:
        return Status.UNKNOWN.icon


SlotStatus = Status | RawStatus


def parse_slot_status(raw: str) -> SlotStatus:
    """Known statuses map to `Status`; any other non-empty text is kept as `RawStatus`."""
    status = Status.parse(raw)
    text = (raw or "").strip()
    if status is Status.UNKNOWN and text and text.lower() != Status.UNKNOWN.value:
        return RawStatus(text)
    return status


def status_label(status: SlotStatus | None) -> str:
    return status.label if status is not None else UNKNOWN_LABEL


def status_icon(status: SlotStatus | None) -> str:
    return status.icon if status is not None else Status.UNKNOWN.icon


# Index 0 holds hour 1 (00:00-01:00); None marks an hour the source did not publish.
SlotVector = tuple[SlotStatus | None, ...]


# ---------- Zones ----------


def zone_display_name(zone: str) -> str:
    """Return the user-facing zone name ("GPV3.2" -> "3.2")."""
    z = (zone or "").strip()
    if z.upper().startswith(ZONE_PREFIX):
        return z[len(ZONE_PREFIX) :]
    return z


def normalize_zone(text: str) -> str | None:
    """Map user input like "gpv3.2", "GPV3.2" or "3.2" to a known zone id."""
    t = (text or "").strip().upper()
    if not t:
        return None
    if not t.startswith(ZONE_PREFIX):
        t = ZONE_PREFIX + t
    return t if t in ALL_ZONES else None


# ---------- Snapshot ----------


@dataclass(frozen=True)
class ScheduleSnapshot:
    """One fetch result: day key -> zone -> 24-slot status vector."""

    by_day: Mapping[int, Mapping[str, SlotVector]]
    updated_at: str
    today: int
    _fingerprint: str = field(default="", init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        frozen: dict[int, Mapping[str, SlotVector]] = {}
        for day, zones in self.by_day.items():
            frozen[int(day)] = MappingProxyType(
                {str(z): _as_vector(slots) for z, slots in zones.items()}
            )
        object.__setattr__(self, "by_day", MappingProxyType(frozen))

    @property
    def tomorrow(self) -> int:
        return self.today + DAY_SECONDS

    def has_day(self, day_key: int) -> bool:
        return day_key in self.by_day

    def zones(self, day_key: int) -> list[str]:
        return sorted(self.by_day.get(day_key, {}))

    def zone_slots(self, day_key: int, zone: str) -> SlotVector | None:
        day = self.by_day.get(day_key)
        if day is None:
            return None
        return day.get(zone)

    @property
    def fingerprint(self) -> str:
        if not self._fingerprint:
            object.__setattr__(self, "_fingerprint", snapshot_fingerprint(self))
        return self._fingerprint


def _as_vector(slots: Any) -> SlotVector:
    vec = tuple(slots)
    if len(vec) != HOURS_PER_DAY:
        raise MalformedSnapshotError(
            f"slot vector must have {HOURS_PER_DAY} entries, got {len(vec)}"
        )
    return vec


def snapshot_fingerprint(snapshot: ScheduleSnapshot) -> str:
    """Content hash of the schedule data, ignoring the update label and today key."""
    canon = {
        str(day): {
            zone: [s.value if s is not None else None for s in slots]
            for zone, slots in zones.items()
        }
        for day, zones in snapshot.by_day.items()
    }
    raw = json.dumps(canon, sort_keys=True, ensure_ascii=False, separators=(",", ":"))
    return hashlib.md5(raw.encode("utf-8")).hexdigest()


# ---------- Payload validation ----------


def _int_key(value: Any, what: str) -> int:
    if isinstance(value, bool):
        raise MalformedSnapshotError(f"{what} is not an integer: {value!r}")
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        raise MalformedSnapshotError(f"{what} is not an integer: {value!r}") from None


def _parse_slots(raw: Any, *, day: int, zone: str) -> SlotVector:
    if not isinstance(raw, Mapping):
        raise MalformedSnapshotError(f"zone {zone} on day {day} is not a mapping")
    slots: list[SlotStatus | None] = [None] * HOURS_PER_DAY
    for hour_raw, status_raw in raw.items():
        try:
            hour = int(str(hour_raw).strip())
        except ValueError:
            continue
        if not 1 <= hour <= HOURS_PER_DAY:
            continue
        if status_raw is None:
            continue
        if not isinstance(status_raw, str):
            raise MalformedSnapshotError(
                f"status for {zone} day {day} hour {hour} is not a string: {status_raw!r}"
            )
        slots[hour - 1] = parse_slot_status(status_raw)
    return tuple(slots)


def snapshot_from_payload(payload: Any) -> ScheduleSnapshot:
    """Validate a `DisconSchedule.fact`-shaped payload and build a snapshot.

    Expected shape::

        {"data": {"<day ts>": {"<zone>": {"<hour 1..24>": "<status>"}}},
         "update": "19.10.2026 14:05", "today": <day ts>}
    """

    if not isinstance(payload, Mapping):
        raise MalformedSnapshotError(f"payload is not a mapping: {type(payload).__name__}")
    data = payload.get("data")
    if not isinstance(data, Mapping):
        raise MalformedSnapshotError("payload has no 'data' mapping")
    if "today" not in payload or payload.get("today") is None:
        raise MalformedSnapshotError("payload has no 'today' key")
    today = _int_key(payload.get("today"), "today")
    update = payload.get("update", "")
    if update is None:
        update = ""
    if not isinstance(update, str):
        raise MalformedSnapshotError(f"'update' is not a string: {update!r}")

    by_day: dict[int, dict[str, SlotVector]] = {}
    for day_raw, zones_raw in data.items():
        day = _int_key(day_raw, "day key")
        if not isinstance(zones_raw, Mapping):
            raise MalformedSnapshotError(f"day {day} is not a mapping")
        by_day[day] = {
            str(zone): _parse_slots(slots_raw, day=day, zone=str(zone))
            for zone, slots_raw in zones_raw.items()
        }
    return ScheduleSnapshot(by_day=by_day, updated_at=update.strip(), today=today)


# ---------- Notification events ----------


@dataclass(frozen=True)
class SlotChange:
    hour: int
    old: SlotStatus | None
    new: SlotStatus


@dataclass(frozen=True)
class DayAppeared:
    zone: str
    day_key: int


@dataclass(frozen=True)
class SlotsChanged:
    zone: str
    day_key: int
    changes: tuple[SlotChange, ...]


NotificationEvent = DayAppeared | SlotsChanged
