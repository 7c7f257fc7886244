"""Paced per-recipient delivery of one message to a subscriber cohort."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

from loguru import logger

DEFAULT_SEND_DELAY = 0.05


class DeliveryOutcome(str, Enum):
    SUCCESS = "success"
    RATE_LIMITED = "rate-limited"
    UNREACHABLE = "unreachable"
    ERROR = "other-error"


SendFn = Callable[[int, str], "DeliveryOutcome | None"]


@dataclass
class DispatchReport:
    delivered: int = 0
    failed: int = 0
    cancelled: int = 0

    def merge(self, other: DispatchReport) -> DispatchReport:
        self.delivered += other.delivered
        self.failed += other.failed
        self.cancelled += other.cancelled
        return self


def _pause(seconds: float, stop_event: threading.Event | None) -> bool:
    """Sleep at least `seconds`; return False if interrupted by `stop_event`."""
    deadline = time.monotonic() + seconds
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return True
        if stop_event is None:
            time.sleep(remaining)
        elif stop_event.wait(remaining):
            return False


class Pacer:
    """Keeps at least `delay_seconds` between consecutive send starts.

    One instance can be shared by several `dispatch` calls so the floor also
    holds across batches sent in the same cycle.
    """

    def __init__(
        self, delay_seconds: float = DEFAULT_SEND_DELAY, stop_event: threading.Event | None = None
    ) -> None:
        self.delay_seconds = delay_seconds
        self.stop_event = stop_event
        self.last_started: float | None = None

    def wait_turn(self) -> bool:
        """Block until the next send may start; False if `stop_event` fired first."""
        if self.stop_event is not None and self.stop_event.is_set():
            return False
        if self.last_started is not None and self.delay_seconds > 0:
            wait = self.delay_seconds - (time.monotonic() - self.last_started)
            if wait > 0 and not _pause(wait, self.stop_event):
                return False
        self.last_started = time.monotonic()
        return True


def dispatch(
    recipients: Iterable[int],
    text: str,
    send: SendFn,
    *,
    delay_seconds: float = DEFAULT_SEND_DELAY,
    stop_event: threading.Event | None = None,
    pacer: Pacer | None = None,
) -> DispatchReport:
    """Send `text` to each recipient in order, at most one send per `delay_seconds`.

    Failed deliveries are logged and skipped; they are not retried and never
    stop the rest of the batch. A set `stop_event` cancels the remainder.
    Pass a shared `pacer` to keep the delay across several batches; it then
    supplies both the delay and the stop event.
    """

    if pacer is None:
        pacer = Pacer(delay_seconds, stop_event)
    queue = list(recipients)
    report = DispatchReport()
    for idx, chat_id in enumerate(queue):
        if not pacer.wait_turn():
            report.cancelled = len(queue) - idx
            break
        try:
            outcome = send(chat_id, text)
        except Exception:
            logger.exception("Помилка надсилання повідомлення в чат {}", chat_id)
            report.failed += 1
            continue
        if outcome is None or outcome is DeliveryOutcome.SUCCESS:
            report.delivered += 1
        else:
            logger.warning(
                "Повідомлення в чат {} не доставлено: {}",
                chat_id,
                getattr(outcome, "value", outcome),
            )
            report.failed += 1
    if report.cancelled:
        logger.info("Розсилку перервано: {} отримувачів пропущено", report.cancelled)
    return report
