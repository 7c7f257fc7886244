from __future__ import annotations

import time

import pytest

from monitor.loop import CycleOutcome, MonitorState, ScheduleMonitor
from monitor.pacer import DeliveryOutcome

TODAY = 1000
TOMORROW = TODAY + 86400


def payload(days: dict, *, update: str = "10:00") -> dict:
    return {
        "data": {
            str(day): {zone: {str(h): s for h, s in hours.items()} for zone, hours in zones.items()}
            for day, zones in days.items()
        },
        "update": update,
        "today": TODAY,
    }


def full(status: str) -> dict:
    return {h: status for h in range(1, 25)}


class Source:
    def __init__(self, *results):
        self.results = list(results)

    def __call__(self):
        item = self.results.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class Sink:
    def __init__(self, outcome: DeliveryOutcome = DeliveryOutcome.SUCCESS):
        self.outcome = outcome
        self.sent: list[tuple[int, str]] = []

    def __call__(self, chat_id: int, text: str) -> DeliveryOutcome:
        self.sent.append((chat_id, text))
        return self.outcome


class Resolver:
    def __init__(self, cohorts: dict[str, set[int]]):
        self.cohorts = cohorts
        self.calls = 0

    def __call__(self) -> dict[str, set[int]]:
        self.calls += 1
        return self.cohorts


def make_monitor(source, resolver, sink) -> ScheduleMonitor:
    return ScheduleMonitor(source, resolver, sink, send_delay_seconds=0, timezone="Europe/Kyiv")


def test_first_fetch_is_stored_as_baseline_without_notifications():
    resolver = Resolver({"Z1": {1}})
    sink = Sink()
    mon = make_monitor(Source(payload({TODAY: {"Z1": full("no")}})), resolver, sink)

    report = mon.run_cycle()

    assert report.outcome is CycleOutcome.BASELINE
    assert mon.last_snapshot is not None
    assert resolver.calls == 0
    assert sink.sent == []
    assert mon.state is MonitorState.IDLE


def test_fetch_failure_keeps_previous_snapshot_and_changes_are_delayed():
    base = payload({TODAY: {"Z1": full("yes")}})
    hours = full("yes")
    hours[5] = "no"
    changed = payload({TODAY: {"Z1": hours}}, update="11:00")
    sink = Sink()
    mon = make_monitor(Source(base, None, changed), Resolver({"Z1": {7}}), sink)

    mon.run_cycle()
    stored = mon.last_snapshot
    assert mon.run_cycle().outcome is CycleOutcome.FETCH_FAILED
    assert mon.last_snapshot is stored
    assert mon.state is MonitorState.IDLE

    assert mon.run_cycle().outcome is CycleOutcome.NOTIFIED
    assert len(sink.sent) == 1
    assert "<code>04-05</code>" in sink.sent[0][1]


def test_malformed_payload_is_skipped_like_a_failed_fetch():
    base = payload({TODAY: {"Z1": full("yes")}})
    mon = make_monitor(Source(base, {"data": "oops", "today": TODAY}), Resolver({}), Sink())
    mon.run_cycle()
    stored = mon.last_snapshot

    assert mon.run_cycle().outcome is CycleOutcome.MALFORMED
    assert mon.last_snapshot is stored


def test_update_time_only_change_short_circuits():
    resolver = Resolver({"Z1": {1}})
    sink = Sink()
    mon = make_monitor(
        Source(
            payload({TODAY: {"Z1": full("yes")}}, update="10:00"),
            payload({TODAY: {"Z1": full("yes")}}, update="10:30"),
        ),
        resolver,
        sink,
    )
    mon.run_cycle()

    report = mon.run_cycle()

    assert report.outcome is CycleOutcome.UNCHANGED
    assert resolver.calls == 0
    assert sink.sent == []


def test_changed_hour_notifies_only_the_affected_zone():
    hours = full("yes")
    hours[5] = "no"
    sink = Sink()
    mon = make_monitor(
        Source(
            payload({TODAY: {"Z1": full("yes"), "Z2": full("no")}}, update="10:00"),
            payload({TODAY: {"Z1": hours, "Z2": full("no")}}, update="10:45"),
        ),
        Resolver({"Z1": {42}, "Z2": {77, 78}}),
        sink,
    )
    mon.run_cycle()

    report = mon.run_cycle()

    assert report.outcome is CycleOutcome.NOTIFIED
    assert len(sink.sent) == 1
    chat_id, text = sink.sent[0]
    assert chat_id == 42
    assert "<code>04-05</code>: ✅ Світло є → 🔴 Світла НЕМАЄ" in text
    assert "🕐 Оновлено: 10:45" in text
    assert text.count("<code>") == 1
    assert report.dispatch.delivered == 1
    assert mon.last_snapshot.updated_at == "10:45"


def test_tomorrow_appearing_sends_summary_instead_of_hourly_listing():
    sink = Sink()
    mon = make_monitor(
        Source(
            payload({TODAY: {"Z1": full("yes")}}),
            payload({TODAY: {"Z1": full("yes")}, TOMORROW: {"Z1": full("yes")}}),
        ),
        Resolver({"Z1": {1, 2}}),
        sink,
    )
    mon.run_cycle()

    mon.run_cycle()

    assert [cid for cid, _ in sink.sent] == [1, 2]
    text = sink.sent[0][1]
    assert "З'явився розклад на завтра!" in text
    assert "✅ Відключень не заплановано!" in text
    assert "<code>" not in text


def test_zones_without_subscribers_are_skipped():
    hours = full("yes")
    hours[1] = "no"
    sink = Sink()
    mon = make_monitor(
        Source(payload({TODAY: {"Z1": full("yes")}}), payload({TODAY: {"Z1": hours}})),
        Resolver({"Z1": set(), "Z2": {5}}),
        sink,
    )
    mon.run_cycle()
    report = mon.run_cycle()
    assert report.events == []
    assert sink.sent == []


def test_failed_deliveries_do_not_block_snapshot_replacement():
    hours = full("yes")
    hours[3] = "first"
    sink = Sink(DeliveryOutcome.UNREACHABLE)
    mon = make_monitor(
        Source(payload({TODAY: {"Z1": full("yes")}}), payload({TODAY: {"Z1": hours}})),
        Resolver({"Z1": {1, 2}}),
        sink,
    )
    mon.run_cycle()

    report = mon.run_cycle()

    assert report.dispatch.failed == 2
    assert len(sink.sent) == 2
    assert mon.last_snapshot.zone_slots(TODAY, "Z1")[2].value == "first"


def test_resolver_error_still_replaces_snapshot_and_propagates():
    hours = full("yes")
    hours[3] = "no"

    def broken_resolver():
        raise RuntimeError("db down")

    mon = make_monitor(
        Source(payload({TODAY: {"Z1": full("yes")}}), payload({TODAY: {"Z1": hours}})),
        broken_resolver,
        Sink(),
    )
    mon.run_cycle()

    with pytest.raises(RuntimeError):
        mon.run_cycle()
    assert mon.last_snapshot.zone_slots(TODAY, "Z1")[2].value == "no"
    assert mon.state is MonitorState.IDLE


def test_run_forever_backs_off_after_failure_and_stops_on_signal(monkeypatch):
    waits: list[float] = []
    mon = ScheduleMonitor(
        Source(RuntimeError("browser crashed"), payload({TODAY: {"Z1": full("yes")}})),
        Resolver({}),
        Sink(),
        interval_seconds=60,
        error_backoff_seconds=30,
        send_delay_seconds=0,
    )

    def fake_sleep(seconds, *, message, stop_event):
        waits.append(seconds)
        if len(waits) == 2:
            stop_event.set()
        return not stop_event.is_set()

    monkeypatch.setattr("monitor.loop.logged_sleep", fake_sleep)
    mon.run_forever()

    assert waits == [30, 60]
    assert mon.last_snapshot is not None
    assert mon.state is MonitorState.STOPPED


def test_stop_before_start_never_fetches():
    source = Source()
    mon = make_monitor(source, Resolver({}), Sink())
    mon.stop()
    mon.run_forever()
    assert mon.state is MonitorState.STOPPED


def test_send_delay_holds_across_batches_of_one_zone():
    starts: list[float] = []

    def send(chat_id: int, text: str) -> DeliveryOutcome:
        starts.append(time.monotonic())
        return DeliveryOutcome.SUCCESS

    today = full("yes")
    today[5] = "no"
    tomorrow = full("yes")
    tomorrow[7] = "no"
    mon = ScheduleMonitor(
        Source(
            payload({TODAY: {"Z1": full("yes")}, TOMORROW: {"Z1": full("yes")}}),
            payload({TODAY: {"Z1": today}, TOMORROW: {"Z1": tomorrow}}),
        ),
        Resolver({"Z1": {42}}),
        send,
        send_delay_seconds=0.2,
    )
    mon.run_cycle()

    report = mon.run_cycle()

    assert len(report.events) == 2
    assert len(starts) == 2
    assert starts[1] - starts[0] >= 0.2
