from __future__ import annotations

import os
import shlex
import sys
from dataclasses import dataclass, field

from dotenv import load_dotenv
from loguru import logger


class ConfigError(Exception):
    pass


TARGET_URL = "https://www.dtek-krem.com.ua/ua/shutdowns"
KYIV_TZ = "Europe/Kyiv"
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def env_get(key: str, *aliases: str, default: str | None = None) -> str | None:
    """Return the first non-empty value from env among `key` and `aliases`."""

    for k in (key, *aliases):
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v
    return default


def env_get_bool(key: str, *aliases: str, default: bool | None = None) -> bool | None:
    """Parse a boolean value from env for `key`/`aliases` if present."""

    v = env_get(key, *aliases)
    if v is None:
        return default
    return str(v).strip().lower() in {"1", "true", "yes", "y", "on"}


def env_get_int(key: str, *aliases: str, default: int) -> int:
    """Parse a positive integer from env; fall back to `default` on missing/invalid values."""

    v = env_get(key, *aliases)
    if v is None:
        return default
    try:
        n = int(str(v).strip())
    except ValueError:
        logger.warning("Некоректне значення {}={!r}; використовується {}", key, v, default)
        return default
    return n if n >= 0 else default


@dataclass
class AppConfig:
    # Telegram
    telegram_enabled: bool = True
    telegram_token: str | None = None
    telegram_persist_dir: str = "var/telegram"
    # Subscribers (PostgreSQL); file store when unset
    database_url: str | None = None
    # Schedule page
    target_url: str = TARGET_URL
    page_wait_seconds: int = 12
    page_load_timeout: int = 60
    user_agent: str = USER_AGENT
    headless: bool = True
    chrome_args: list[str] = field(default_factory=list)
    # Monitor loop
    check_interval_seconds: int = 60
    error_backoff_seconds: int = 30
    send_delay_ms: int = 50
    timezone: str = KYIV_TZ
    dry_run: bool = False
    # Logging
    log_level: str = "INFO"
    log_file: str | None = None
    log_color: bool | None = None


def load_env_config(env_path: str) -> AppConfig:
    """Load configuration from .env-style file and environment."""

    def _try_load(paths: list[str]) -> bool:
        for p in paths:
            if p and os.path.isfile(p) and load_dotenv(p):
                logger.debug("Завантажено файл конфігурації: {}", p)
                return True
        return False

    candidates: list[str] = []
    if env_path:
        if os.path.isabs(env_path):
            candidates.append(env_path)
        else:
            candidates.append(os.path.join(os.getcwd(), env_path))
    # ENV_FILE override
    env_file_env = os.getenv("ENV_FILE")
    if env_file_env:
        candidates.insert(0, env_file_env)
    if not _try_load(candidates):
        load_dotenv(env_path)

    dry_run = bool(env_get_bool("DRY_RUN", default=False))
    telegram_enabled = env_get_bool("TELEGRAM_ENABLED", default=True)
    telegram_token = env_get("TELEGRAM_BOT_TOKEN", "TELEGRAM_TOKEN")
    if telegram_enabled and not telegram_token and not dry_run:
        msg = "TELEGRAM_BOT_TOKEN не задано (або увімкніть DRY_RUN=true)"
        logger.error(msg)
        raise ConfigError(msg)

    # Check interval: allow either seconds or minutes envs
    interval_sec = env_get_int("CHECK_INTERVAL_SECONDS", "POLL_INTERVAL_SECONDS", default=0)
    interval_min = env_get_int("CHECK_INTERVAL_MINUTES", "POLL_INTERVAL_MINUTES", default=0)
    check_interval_seconds = (
        interval_sec if interval_sec > 0 else (interval_min * 60 if interval_min > 0 else 60)
    )

    chrome_args_raw = env_get("CHROME_ARGS")
    chrome_args = shlex.split(chrome_args_raw) if chrome_args_raw else []
    log_level = env_get("LOG_LEVEL", default="INFO") or "INFO"

    return AppConfig(
        telegram_enabled=bool(telegram_enabled),
        telegram_token=telegram_token,
        telegram_persist_dir=env_get("TELEGRAM_PERSIST_DIR", default="var/telegram")
        or "var/telegram",
        database_url=env_get("DATABASE_URL"),
        target_url=env_get("TARGET_URL", default=TARGET_URL) or TARGET_URL,
        page_wait_seconds=env_get_int("PAGE_WAIT_SECONDS", default=12),
        page_load_timeout=env_get_int("PAGE_LOAD_TIMEOUT", default=60),
        user_agent=env_get("USER_AGENT", default=USER_AGENT) or USER_AGENT,
        headless=bool(env_get_bool("HEADLESS", default=True)),
        chrome_args=chrome_args,
        check_interval_seconds=check_interval_seconds,
        error_backoff_seconds=env_get_int("ERROR_BACKOFF_SECONDS", default=30),
        send_delay_ms=env_get_int("SEND_DELAY_MS", default=50),
        timezone=env_get("TIMEZONE", "TZ", default=KYIV_TZ) or KYIV_TZ,
        dry_run=dry_run,
        log_level=log_level.upper(),
        log_file=env_get("LOG_FILE"),
        log_color=env_get_bool("LOG_COLOR", default=None),
    )


def setup_logging(
    level: str = "INFO", log_file: str | None = None, color: bool | None = None
) -> None:
    """Configure loguru sinks for console and optional file."""

    logger.remove()
    fmt_color = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>"
    )
    fmt_plain = (
        "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"
    )
    logger.add(
        sys.stderr,
        level=level,
        colorize=(True if color is None else bool(color)),
        backtrace=True,
        diagnose=False,
        format=fmt_color if (color is None or color) else fmt_plain,
    )
    if log_file:
        # Defaults: rotate at 10 MB, keep 7 days, compress as zip.
        rotation = env_get("LOG_ROTATION", default="10 MB") or "10 MB"
        retention = env_get("LOG_RETENTION", default="7 days") or "7 days"
        compression = env_get("LOG_COMPRESSION", default="zip") or "zip"
        try:
            d = os.path.dirname(log_file)
            if d and not os.path.exists(d):
                os.makedirs(d, exist_ok=True)
        except OSError as e:
            logger.warning("Не вдалося створити каталог для логу '{}': {}", log_file, e)
        logger.add(
            log_file,
            level=level,
            rotation=rotation,
            retention=retention,
            compression=compression,
            enqueue=True,
            backtrace=True,
            diagnose=False,
            format=fmt_plain,
        )
