"""Telegram core primitives: API client and the outcome-classifying message sink."""

from __future__ import annotations

import json
import urllib.error as _urlerr
import urllib.request
from typing import Any

from loguru import logger

from monitor.pacer import DeliveryOutcome

# -------------------- API --------------------


class TelegramAPIError(Exception):
    """Bot API answered with ok=false."""

    def __init__(self, method: str, payload: dict) -> None:
        self.method = method
        self.payload = payload
        self.error_code = payload.get("error_code")
        self.description = str(payload.get("description") or "")
        super().__init__(f"{method}: [{self.error_code}] {self.description}")


class TelegramAPI:
    """Thin HTTP wrapper for Telegram Bot API using stdlib only."""

    def __init__(self, token: str, *, api_base: str = "https://api.telegram.org") -> None:
        self.token = token
        self.api_base = api_base.rstrip("/")

    def call(self, method: str, params: dict | None = None, *, timeout: int = 25) -> dict:
        url = f"{self.api_base}/bot{self.token}/{method}"
        data = None
        headers = {"Content-Type": "application/json"}
        if params is not None:
            data = json.dumps(params).encode("utf-8")
        req = urllib.request.Request(url, data=data, headers=headers)
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            payload = resp.read()
            return json.loads(payload)

    # Convenience wrappers
    def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        parse_mode: str | None = "HTML",
        disable_web_page_preview: bool = True,
        reply_markup: dict[str, Any] | None = None,
    ) -> dict:
        params: dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "disable_web_page_preview": disable_web_page_preview,
        }
        if parse_mode:
            params["parse_mode"] = parse_mode
        if reply_markup is not None:
            params["reply_markup"] = reply_markup
        res = self.call("sendMessage", params)
        if not res.get("ok"):
            raise TelegramAPIError("sendMessage", res)
        return res

    def get_updates(
        self,
        *,
        offset: int | None = None,
        timeout: int = 25,
        allowed_updates: list[str] | None = None,
    ) -> dict:
        params: dict[str, Any] = {"timeout": timeout}
        if offset is not None:
            params["offset"] = offset
        if allowed_updates is not None:
            params["allowed_updates"] = allowed_updates
        return self.call("getUpdates", params, timeout=timeout + 5)

    def get_me(self) -> dict:
        return self.call("getMe")


# -------------------- Sinks --------------------


def _http_error_body(e: _urlerr.HTTPError) -> str:
    try:
        return e.read().decode("utf-8", errors="ignore")
    except Exception:
        return str(e)


def classify_http_error(code: int | None, description: str) -> DeliveryOutcome:
    """Map a Bot API error to a delivery outcome."""
    desc = (description or "").lower()
    if code == 429:
        return DeliveryOutcome.RATE_LIMITED
    if code == 403:
        return DeliveryOutcome.UNREACHABLE
    if code == 400 and ("chat not found" in desc or "user is deactivated" in desc):
        return DeliveryOutcome.UNREACHABLE
    return DeliveryOutcome.ERROR


class TelegramNotifier:
    """Message sink for the dispatch pacer: sends HTML messages, never raises."""

    def __init__(self, api: TelegramAPI) -> None:
        self.api = api

    def send(self, chat_id: int, text: str) -> DeliveryOutcome:
        try:
            self.api.send_message(chat_id, text, parse_mode="HTML")
            return DeliveryOutcome.SUCCESS
        except TelegramAPIError as e:
            outcome = classify_http_error(e.error_code, e.description)
            logger.warning("Telegram відхилив повідомлення для {}: {}", chat_id, e)
            return outcome
        except _urlerr.HTTPError as e:
            body = _http_error_body(e)
            outcome = classify_http_error(e.code, body)
            if outcome is DeliveryOutcome.UNREACHABLE:
                logger.warning("Бот заблоковано або чат недоступний: {}", chat_id)
            else:
                logger.warning("Telegram HTTP {} для {}: {}", e.code, chat_id, body)
            return outcome
        except (_urlerr.URLError, TimeoutError, ValueError) as e:
            logger.warning("Помилка Telegram API для {}: {}", chat_id, e)
            return DeliveryOutcome.ERROR


class DryRunSink:
    """Logs messages instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[tuple[int, str]] = []

    def send(self, chat_id: int, text: str) -> DeliveryOutcome:
        self.sent.append((chat_id, text))
        logger.info("Dry-run: повідомлення для {}:\n{}", chat_id, text)
        return DeliveryOutcome.SUCCESS
