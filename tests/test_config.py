from __future__ import annotations

import pytest

from utils.config import ConfigError, env_get, env_get_bool, env_get_int, load_env_config

KEYS = [
    "ENV_FILE",
    "DRY_RUN",
    "TELEGRAM_ENABLED",
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_TOKEN",
    "CHECK_INTERVAL_SECONDS",
    "POLL_INTERVAL_SECONDS",
    "CHECK_INTERVAL_MINUTES",
    "POLL_INTERVAL_MINUTES",
    "SEND_DELAY_MS",
    "CHROME_ARGS",
    "LOG_LEVEL",
    "TIMEZONE",
    "TZ",
    "DATABASE_URL",
]


@pytest.fixture()
def clean_env(monkeypatch, tmp_path):
    for k in KEYS:
        monkeypatch.delenv(k, raising=False)
    return str(tmp_path / "missing.env")


def test_env_helpers(monkeypatch):
    monkeypatch.setenv("A_KEY", "  ")
    monkeypatch.setenv("B_KEY", "on")
    monkeypatch.setenv("C_KEY", "oops")
    assert env_get("A_KEY", "B_KEY") == "on"
    assert env_get_bool("B_KEY") is True
    assert env_get_bool("MISSING_KEY_X", default=None) is None
    assert env_get_int("C_KEY", default=7) == 7


def test_missing_token_is_a_config_error(clean_env):
    with pytest.raises(ConfigError):
        load_env_config(clean_env)


def test_dry_run_allows_missing_token(clean_env, monkeypatch):
    monkeypatch.setenv("DRY_RUN", "true")
    cfg = load_env_config(clean_env)
    assert cfg.dry_run is True
    assert cfg.telegram_token is None
    assert cfg.check_interval_seconds == 60
    assert cfg.error_backoff_seconds == 30
    assert cfg.send_delay_ms == 50
    assert cfg.timezone == "Europe/Kyiv"


def test_interval_minutes_and_overrides(clean_env, monkeypatch):
    monkeypatch.setenv("TELEGRAM_TOKEN", "123:abc")
    monkeypatch.setenv("CHECK_INTERVAL_MINUTES", "5")
    monkeypatch.setenv("CHROME_ARGS", "--disable-gpu --lang=uk")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    cfg = load_env_config(clean_env)
    assert cfg.telegram_token == "123:abc"
    assert cfg.check_interval_seconds == 300
    assert cfg.chrome_args == ["--disable-gpu", "--lang=uk"]
    assert cfg.log_level == "DEBUG"


def test_interval_seconds_wins_over_minutes(clean_env, monkeypatch):
    monkeypatch.setenv("DRY_RUN", "1")
    monkeypatch.setenv("CHECK_INTERVAL_MINUTES", "5")
    monkeypatch.setenv("POLL_INTERVAL_SECONDS", "45")
    assert load_env_config(clean_env).check_interval_seconds == 45


def test_env_file_is_loaded(clean_env, monkeypatch, tmp_path):
    env_file = tmp_path / "app.env"
    env_file.write_text("TELEGRAM_BOT_TOKEN=from-file\nSEND_DELAY_MS=120\n", encoding="utf-8")
    # register the keys so monkeypatch removes whatever the file sets
    for key in ("TELEGRAM_BOT_TOKEN", "SEND_DELAY_MS"):
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    cfg = load_env_config(str(env_file))
    assert cfg.telegram_token == "from-file"
    assert cfg.send_delay_ms == 120
