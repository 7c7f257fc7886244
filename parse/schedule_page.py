"""Fetch the raw `DisconSchedule.fact` payload from the DTEK shutdowns page."""

from __future__ import annotations

import json
import re
from typing import Any

from loguru import logger
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.support.ui import WebDriverWait

from .browser import _should_reinit, init_driver

DEFAULT_URL = "https://www.dtek-krem.com.ua/ua/shutdowns"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

SCHEDULE_RE = re.compile(r"DisconSchedule\.fact\s*=\s*(\{.*?\});", re.DOTALL)
JS_READ_FACT = (
    "return (typeof DisconSchedule !== 'undefined' && DisconSchedule.fact)"
    " ? JSON.stringify(DisconSchedule.fact) : null;"
)


def extract_fact_from_html(content: str) -> dict[str, Any] | None:
    """Fallback: pull the `DisconSchedule.fact = {...};` literal out of page HTML."""
    m = SCHEDULE_RE.search(content or "")
    if not m:
        return None
    try:
        obj = json.loads(m.group(1))
    except ValueError as e:
        logger.warning("Не вдалося розібрати JSON DisconSchedule.fact: {}", e)
        return None
    return obj if isinstance(obj, dict) else None


def _log_challenge_hints(content: str) -> None:
    if "Incapsula" in content or "_Incapsula" in content:
        logger.warning("Виявлено сторінку перевірки Incapsula WAF; потрібно довше чекати")
    if "challenge" in content or "captcha" in content:
        logger.warning("Виявлено challenge/captcha у відповіді")


class SchedulePage:
    """Selenium-backed fetch source; `fetch()` returns the raw payload or None."""

    def __init__(
        self,
        url: str = DEFAULT_URL,
        *,
        wait_seconds: int = 12,
        headless: bool = True,
        user_agent: str | None = DEFAULT_USER_AGENT,
        extra_args: list[str] | None = None,
        page_load_timeout: int = 60,
    ) -> None:
        self.url = url
        self.wait_seconds = wait_seconds
        self.headless = headless
        self.user_agent = user_agent
        self.extra_args = list(extra_args or [])
        self.page_load_timeout = page_load_timeout
        self._driver = None

    def _ensure_driver(self):
        if self._driver is None:
            logger.info("Ініціалізація браузера…")
            self._driver = init_driver(
                headless=self.headless,
                extra_args=self.extra_args,
                user_agent=self.user_agent,
                page_load_timeout=self.page_load_timeout,
            )
        return self._driver

    def _read_fact_js(self, driver) -> dict[str, Any] | None:
        def _ready(d):
            return d.execute_script(JS_READ_FACT)

        try:
            raw = WebDriverWait(driver, self.wait_seconds, poll_frequency=1).until(_ready)
        except TimeoutException:
            return None
        logger.debug("DisconSchedule.fact отримано з JS ({} символів)", len(raw))
        obj = json.loads(raw)
        return obj if isinstance(obj, dict) else None

    def fetch(self) -> dict[str, Any] | None:
        try:
            driver = self._ensure_driver()
            logger.debug("Відкриваємо {}", self.url)
            driver.get(self.url)
            WebDriverWait(driver, self.page_load_timeout).until(
                lambda d: d.execute_script("return document.readyState") == "complete"
            )
            data = self._read_fact_js(driver)
            if data is not None:
                logger.info("Графік отримано. Оновлено: {}", data.get("update"))
                return data

            content = driver.page_source or ""
            logger.debug("Довжина сторінки: {}", len(content))
            data = extract_fact_from_html(content)
            if data is None:
                logger.warning(
                    "DisconSchedule.fact не знайдено на сторінці (довжина: {})", len(content)
                )
                logger.debug("Початок сторінки: {}", content[:2000])
                _log_challenge_hints(content)
                return None
            logger.info("Графік отримано з HTML. Оновлено: {}", data.get("update"))
            return data
        except WebDriverException as e:
            first = str(e).splitlines()[0] if str(e) else type(e).__name__
            if _should_reinit(e):
                logger.warning("Збій WebDriver: {}. Браузер буде перезапущено", first)
                self.close()
            else:
                logger.warning("Помилка WebDriver під час отримання графіка: {}", first)
            return None
        except ValueError as e:
            logger.warning("Некоректний JSON графіка: {}", e)
            return None

    def close(self) -> None:
        if self._driver is None:
            return
        try:
            self._driver.quit()
        except Exception:
            logger.warning("Не вдалося коректно закрити браузер")
        finally:
            self._driver = None
