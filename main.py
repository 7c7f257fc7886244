"""Zero-CLI entrypoint and application orchestration.

Reads configuration from `.env.config` and environment variables, then wires
the pipeline (logging setup → subscriber store → Telegram sink and bot →
browser page source → schedule monitor loop).
"""

from __future__ import annotations

import signal
import sys
import threading

from loguru import logger

from monitor import ScheduleMonitor
from monitor.telegram_bot import (
    DryRunSink,
    TelegramAPI,
    TelegramBot,
    TelegramNotifier,
    get_store,
    start_bot_background,
)
from parse.schedule_page import SchedulePage
from utils.config import AppConfig, ConfigError, load_env_config, setup_logging


def _install_signal_handlers(stop_event: threading.Event) -> None:
    def _handle(signum, _frame):
        logger.info("Отримано сигнал {}; зупиняємо моніторинг…", signum)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            signal.signal(sig, _handle)
        except (ValueError, OSError):
            logger.debug("Не вдалося встановити обробник сигналу {}", sig)


def run(env_path: str = ".env.config") -> None:
    try:
        cfg: AppConfig = load_env_config(env_path)
    except ConfigError as ce:
        logger.error("Помилка конфігурації: {}", ce)
        sys.exit(2)

    setup_logging(level=cfg.log_level, log_file=cfg.log_file, color=cfg.log_color)
    logger.debug(
        "Параметри запуску: url={}, interval={}s, backoff={}s, send_delay={}ms, tz={}, dry_run={}",
        cfg.target_url,
        cfg.check_interval_seconds,
        cfg.error_backoff_seconds,
        cfg.send_delay_ms,
        cfg.timezone,
        cfg.dry_run,
    )

    stop_event = threading.Event()
    _install_signal_handlers(stop_event)

    store = get_store(cfg.database_url, cfg.telegram_persist_dir)
    api = TelegramAPI(cfg.telegram_token) if cfg.telegram_token else None
    if cfg.dry_run or api is None or not cfg.telegram_enabled:
        logger.info("Dry-run: сповіщення лише записуються в лог")
        sink = DryRunSink()
    else:
        sink = TelegramNotifier(api)

    page = SchedulePage(
        cfg.target_url,
        wait_seconds=cfg.page_wait_seconds,
        headless=cfg.headless,
        user_agent=cfg.user_agent,
        extra_args=cfg.chrome_args,
        page_load_timeout=cfg.page_load_timeout,
    )
    monitor = ScheduleMonitor(
        page.fetch,
        store.subscriptions_by_zone,
        sink.send,
        interval_seconds=cfg.check_interval_seconds,
        error_backoff_seconds=cfg.error_backoff_seconds,
        send_delay_seconds=cfg.send_delay_ms / 1000.0,
        timezone=cfg.timezone,
        stop_event=stop_event,
    )

    bot_thread = None
    if api is not None and cfg.telegram_enabled:
        bot = TelegramBot(
            api,
            store,
            snapshot_provider=lambda: monitor.last_snapshot,
            timezone=cfg.timezone,
            site_url=cfg.target_url,
        )
        bot_thread = start_bot_background(bot, stop_event=stop_event)
    else:
        logger.debug("Telegram бот вимкнений; команди не обробляються")

    try:
        monitor.run_forever()
    finally:
        stop_event.set()
        page.close()
        if bot_thread is not None:
            bot_thread.join(timeout=5)


if __name__ == "__main__":
    run(".env.config")
