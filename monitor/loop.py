"""Polling loop: owns the last known snapshot and runs fetch-compare-notify cycles."""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from loguru import logger

from utils import logged_sleep

from .diff import count_changes, detect_events
from .errors import MalformedSnapshotError
from .formatting import DEFAULT_TIMEZONE, render_event
from .model import NotificationEvent, ScheduleSnapshot, snapshot_from_payload
from .pacer import DEFAULT_SEND_DELAY, DispatchReport, Pacer, SendFn, dispatch

FetchFn = Callable[[], "ScheduleSnapshot | Mapping[str, Any] | None"]
ResolveFn = Callable[[], Mapping[str, "set[int]"]]


class MonitorState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    COMPARING = "comparing"
    NOTIFYING = "notifying"
    STOPPED = "stopped"


class CycleOutcome(str, Enum):
    FETCH_FAILED = "fetch-failed"
    MALFORMED = "malformed"
    BASELINE = "baseline"
    UNCHANGED = "unchanged"
    NOTIFIED = "notified"


@dataclass
class CycleReport:
    outcome: CycleOutcome
    events: list[NotificationEvent] = field(default_factory=list)
    dispatch: DispatchReport = field(default_factory=DispatchReport)


class ScheduleMonitor:
    """Timer-driven fetch → compare → notify loop.

    Only this object writes the stored snapshot; readers (the bot's /schedule
    view) use `last_snapshot`, which is swapped atomically after each cycle.
    """

    def __init__(
        self,
        fetch: FetchFn,
        resolve: ResolveFn,
        send: SendFn,
        *,
        interval_seconds: float = 60,
        error_backoff_seconds: float = 30,
        send_delay_seconds: float = DEFAULT_SEND_DELAY,
        timezone: str = DEFAULT_TIMEZONE,
        stop_event: threading.Event | None = None,
    ) -> None:
        self.fetch = fetch
        self.resolve = resolve
        self.send = send
        self.interval_seconds = interval_seconds
        self.error_backoff_seconds = error_backoff_seconds
        self.send_delay_seconds = send_delay_seconds
        self.timezone = timezone
        self.stop_event = stop_event or threading.Event()
        self.state = MonitorState.IDLE
        self._snapshot: ScheduleSnapshot | None = None

    @property
    def last_snapshot(self) -> ScheduleSnapshot | None:
        return self._snapshot

    def stop(self) -> None:
        self.stop_event.set()

    # -------------------- One cycle --------------------

    def _fetch_snapshot(self) -> tuple[ScheduleSnapshot | None, CycleOutcome | None]:
        self.state = MonitorState.FETCHING
        result = self.fetch()
        if result is None:
            logger.warning("Не вдалося отримати графік; спробуємо в наступному циклі")
            return None, CycleOutcome.FETCH_FAILED
        if isinstance(result, ScheduleSnapshot):
            return result, None
        try:
            return snapshot_from_payload(result), None
        except MalformedSnapshotError as e:
            logger.error("Отримано некоректні дані графіка: {}", e)
            logger.debug("Некоректний payload: {!r}", result)
            return None, CycleOutcome.MALFORMED

    def run_cycle(self) -> CycleReport:
        """Run a single fetch-compare-notify cycle and return what happened."""

        try:
            new, failure = self._fetch_snapshot()
            if new is None:
                return CycleReport(outcome=failure or CycleOutcome.FETCH_FAILED)

            old = self._snapshot
            if old is None:
                self._snapshot = new
                logger.info("Отримано початковий графік. Оновлено: {}", new.updated_at)
                return CycleReport(outcome=CycleOutcome.BASELINE)

            self.state = MonitorState.COMPARING
            if new.fingerprint == old.fingerprint:
                logger.debug("Змін у графіку не виявлено (оновлено: {})", new.updated_at)
                return CycleReport(outcome=CycleOutcome.UNCHANGED)

            logger.info(
                "Графік змінився! Попереднє оновлення: {}, нове: {}",
                old.updated_at,
                new.updated_at,
            )
            self.state = MonitorState.NOTIFYING
            try:
                return self._notify(old, new)
            finally:
                self._snapshot = new
        finally:
            if self.state is not MonitorState.STOPPED:
                self.state = MonitorState.IDLE

    def _notify(self, old: ScheduleSnapshot, new: ScheduleSnapshot) -> CycleReport:
        cohorts = {zone: set(ids) for zone, ids in self.resolve().items() if ids}
        report = CycleReport(outcome=CycleOutcome.NOTIFIED)
        if not cohorts:
            logger.debug("Немає підписників для сповіщення")
            return report

        report.events = detect_events(old, new, cohorts.keys())
        logger.debug(
            "Подій для сповіщення: {} (змін: {})",
            len(report.events),
            count_changes(report.events),
        )
        pacer = Pacer(self.send_delay_seconds, self.stop_event)
        for event in report.events:
            if self.stop_event.is_set():
                logger.info("Отримано сигнал зупинки; решту сповіщень пропущено")
                break
            text = render_event(event, new, timezone=self.timezone)
            recipients = sorted(cohorts[event.zone])
            logger.info(
                "Надсилаємо сповіщення ({}) {} підписникам черги {}",
                type(event).__name__,
                len(recipients),
                event.zone,
            )
            batch = dispatch(recipients, text, self.send, pacer=pacer)
            report.dispatch.merge(batch)
        if report.events:
            logger.success(
                "Сповіщення надіслано: доставлено {}, помилок {}",
                report.dispatch.delivered,
                report.dispatch.failed,
            )
        return report

    # -------------------- Loop --------------------

    def run_forever(self) -> None:
        """Run cycles until `stop()`; a failing cycle is followed by a longer backoff."""

        logger.info(
            "Моніторинг графіка запущено (інтервал {} с, пауза після збою {} с)",
            self.interval_seconds,
            self.error_backoff_seconds,
        )
        while not self.stop_event.is_set():
            try:
                self.run_cycle()
            except Exception as e:
                logger.exception("Збій циклу моніторингу: {}", e)
                logged_sleep(
                    self.error_backoff_seconds,
                    message="Пауза після збою",
                    stop_event=self.stop_event,
                )
                continue
            logged_sleep(
                self.interval_seconds,
                message="Очікування до наступної перевірки",
                stop_event=self.stop_event,
            )
        self.state = MonitorState.STOPPED
        logger.info("Моніторинг графіка зупинено")
