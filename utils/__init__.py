"""Small utilities shared across modules."""

from __future__ import annotations

import threading
import time

from loguru import logger


def logged_sleep(
    total_seconds: float,
    *,
    message: str = "Очікування",
    tick_seconds: float = 1.0,
    bar_width: int = 30,
    stop_event: threading.Event | None = None,
) -> bool:
    """Sleep with a simple textual progress bar logged via loguru.

    - Logs a start message with total seconds.
    - Updates a single-line progress bar every `tick_seconds` using a carriage return.
    - Returns early (False) once `stop_event` is set; True when the full wait elapsed.
    """

    try:
        total = float(total_seconds)
    except (TypeError, ValueError):
        total = 0.0
    if total <= 0:
        return not (stop_event is not None and stop_event.is_set())

    logger.debug("{}: {} сек.", message, int(total))

    start = time.monotonic()
    end = start + total

    while True:
        now = time.monotonic()
        remaining = max(0.0, end - now)
        elapsed = total - remaining
        frac = min(1.0, elapsed / total)
        filled = int(round(bar_width * frac)) if bar_width > 0 else 0
        empty = bar_width - filled
        bar = (
            "[" + ("█" * filled) + (" " * max(0, empty)) + f"] {int(elapsed):02d}/{int(total):02d}s"
        )
        logger.opt(raw=True).debug("\r" + bar)
        if remaining <= 0:
            break
        sleep_dur = tick_seconds if remaining > tick_seconds else remaining
        if stop_event is None:
            time.sleep(sleep_dur)
        elif stop_event.wait(sleep_dur):
            logger.opt(raw=True).debug("\n")
            logger.debug("Очікування перервано сигналом зупинки")
            return False

    logger.opt(raw=True).debug("\n")
    logger.debug("Очікування завершено")
    return True
