"""Telegram HTML formatter for outage notifications and the on-demand schedule view."""

from __future__ import annotations

import html as _html
from collections.abc import Iterable
from datetime import date, datetime
from zoneinfo import ZoneInfo

from .model import (
    HOURS_PER_DAY,
    DayAppeared,
    NotificationEvent,
    ScheduleSnapshot,
    SlotChange,
    SlotsChanged,
    SlotStatus,
    SlotVector,
    Status,
    status_icon,
    status_label,
    zone_display_name,
)

DEFAULT_TIMEZONE = "Europe/Kyiv"

TODAY_LABEL = "Сьогодні"
TOMORROW_LABEL = "Завтра"

SCHEDULE_HINT = "Використовуйте /schedule щоб переглянути детальний розклад."

# ---------- Helpers ----------


def tg_escape(text: str) -> str:
    """Escape text for Telegram HTML parse_mode (escape &, <, >)."""
    return _html.escape(text or "", quote=False)


def hour_range(hour: int) -> str:
    """Slot label: hour 1 -> "00-01", hour 24 -> "23-00"."""
    start = hour - 1
    end = 0 if hour == HOURS_PER_DAY else hour
    return f"{start:02d}-{end:02d}"


def day_key_to_date(day_key: int, tz_name: str = DEFAULT_TIMEZONE) -> date:
    return datetime.fromtimestamp(day_key, ZoneInfo(tz_name)).date()


def format_date(d: date) -> str:
    return d.strftime("%d.%m.%Y")


def day_label(snapshot: ScheduleSnapshot, day_key: int, tz_name: str = DEFAULT_TIMEZONE) -> str:
    if day_key == snapshot.today:
        return TODAY_LABEL
    if day_key == snapshot.tomorrow:
        return TOMORROW_LABEL
    return format_date(day_key_to_date(day_key, tz_name))


def count_hours(slots: Iterable[SlotStatus | None]) -> tuple[int, int]:
    """Return (unavailable hours, partial hours)."""
    off = 0
    partial = 0
    for s in slots:
        if s is Status.UNAVAILABLE:
            off += 1
        elif s is not None and s.is_partial:
            partial += 1
    return off, partial


# ---------- Notifications ----------


def compose_changes(
    zone: str, changes: Iterable[SlotChange], updated_at: str, day_label: str
) -> str:
    lines: list[str] = [
        f"🔔 <b>Зміни в графіку: черга {tg_escape(zone_display_name(zone))}</b> | {tg_escape(day_label)}",
        f"🕐 Оновлено: {tg_escape(updated_at)}",
        "",
    ]
    for ch in changes:
        lines.append(
            f"<code>{hour_range(ch.hour)}</code>: "
            f"{tg_escape(status_label(ch.old))} → {tg_escape(status_label(ch.new))}"
        )
    return "\n".join(lines)


def compose_day_appeared(
    zone: str, snapshot: ScheduleSnapshot, day_key: int, *, timezone: str = DEFAULT_TIMEZONE
) -> str:
    """Summary for a newly published day: outage and partial hour counts, no per-hour list."""

    which = "завтра" if day_key == snapshot.tomorrow else "сьогодні"
    if day_key not in (snapshot.today, snapshot.tomorrow):
        which = format_date(day_key_to_date(day_key, timezone))
    lines: list[str] = [
        f"📆 <b>З'явився розклад на {which}!</b>",
        f"Черга: <b>{tg_escape(zone_display_name(zone))}</b>",
        f"🕐 Оновлено: {tg_escape(snapshot.updated_at)}",
        "",
        f"📅 {format_date(day_key_to_date(day_key, timezone))}",
        "",
    ]
    slots = snapshot.zone_slots(day_key, zone) or ()
    off, partial = count_hours(slots)
    if off > 0:
        lines.append(f"🔴 Відключення: {off} год.")
    if partial > 0:
        lines.append(f"⚠️ Частково: {partial} год.")
    if off == 0 and partial == 0:
        lines.append("✅ Відключень не заплановано!")
    lines.append("")
    lines.append(SCHEDULE_HINT)
    return "\n".join(lines)


def render_event(
    event: NotificationEvent, snapshot: ScheduleSnapshot, *, timezone: str = DEFAULT_TIMEZONE
) -> str:
    if isinstance(event, DayAppeared):
        return compose_day_appeared(event.zone, snapshot, event.day_key, timezone=timezone)
    if isinstance(event, SlotsChanged):
        return compose_changes(
            event.zone,
            event.changes,
            snapshot.updated_at,
            day_label(snapshot, event.day_key, timezone),
        )
    raise TypeError(f"unsupported event: {event!r}")


# ---------- On-demand schedule view ----------


LEGEND = "<b>Легенда:</b> ✅ є | 🔴 немає | ⚠️½ частк."


def format_day_schedule(
    zone: str,
    slots: SlotVector,
    day_label: str,
    day_date: date,
    *,
    current_hour: int | None = None,
) -> str:
    """24-line hourly view for one zone/day; `current_hour` (1..24) gets a marker."""

    lines: list[str] = [
        f"📊 <b>Черга {tg_escape(zone_display_name(zone))}</b> | {tg_escape(day_label)}",
        f"📅 {format_date(day_date)}",
        "",
    ]
    for hour in range(1, HOURS_PER_DAY + 1):
        marker = "👉 " if hour == current_hour else "   "
        lines.append(f"{marker}<code>{hour_range(hour)}</code> {status_icon(slots[hour - 1])}")
    lines.append("")
    lines.append(LEGEND)
    return "\n".join(lines)


def format_schedule_view(
    zone: str,
    snapshot: ScheduleSnapshot | None,
    *,
    timezone: str = DEFAULT_TIMEZONE,
    now: datetime | None = None,
) -> str:
    """Today and (when published) tomorrow for one zone, as sent for /schedule."""

    if snapshot is None:
        return "⏳ Дані ще завантажуються. Спробуйте через хвилину."
    today_slots = snapshot.zone_slots(snapshot.today, zone)
    if today_slots is None:
        return f"❌ Дані для черги {tg_escape(zone_display_name(zone))} недоступні."

    if now is None:
        now = datetime.now(ZoneInfo(timezone))
    blocks: list[str] = [
        format_day_schedule(
            zone,
            today_slots,
            TODAY_LABEL,
            day_key_to_date(snapshot.today, timezone),
            current_hour=now.hour + 1,
        )
    ]
    tomorrow_slots = snapshot.zone_slots(snapshot.tomorrow, zone)
    if tomorrow_slots is not None:
        blocks.append(
            format_day_schedule(
                zone,
                tomorrow_slots,
                TOMORROW_LABEL,
                day_key_to_date(snapshot.tomorrow, timezone),
            )
        )
    else:
        blocks.append("ℹ️ Розклад на завтра ще не опубліковано.")
    blocks.append(f"🕐 Оновлено: {tg_escape(snapshot.updated_at)}")
    return "\n\n".join(blocks)
