"""Telegram bot runtime: command handling and long polling."""

from __future__ import annotations

import threading
import urllib.error as _urlerr
from collections.abc import Callable

from loguru import logger

from monitor.formatting import DEFAULT_TIMEZONE, format_schedule_view, tg_escape
from monitor.model import ALL_ZONES, ScheduleSnapshot, normalize_zone, zone_display_name
from utils import logged_sleep

from .core import TelegramAPI
from .store import BaseSubscriberStore

DTEK_SITE_URL = "https://www.dtek-krem.com.ua/ua/shutdowns"

SnapshotProvider = Callable[[], "ScheduleSnapshot | None"]

BUTTON_COMMANDS = {
    "📅 розклад": "/schedule",
    "📊 обрати групу": "/setgroup",
    "ℹ️ моя група": "/mygroup",
    "❓ як дізнатись групу": "/howto",
    "❌ відписатися": "/stop",
}


class TelegramBot:
    def __init__(
        self,
        api: TelegramAPI,
        store: BaseSubscriberStore,
        *,
        snapshot_provider: SnapshotProvider,
        timezone: str = DEFAULT_TIMEZONE,
        site_url: str = DTEK_SITE_URL,
    ) -> None:
        self.api = api
        self.store = store
        self.snapshot_provider = snapshot_provider
        self.tz = timezone
        self.site_url = site_url
        self.last_update_id: int | None = None

    # Keyboards
    @property
    def main_kb(self) -> dict:
        return {
            "keyboard": [
                ["📅 Розклад", "📊 Обрати групу"],
                ["ℹ️ Моя група", "❓ Як дізнатись групу"],
                ["❌ Відписатися"],
            ],
            "resize_keyboard": True,
            "one_time_keyboard": False,
        }

    @property
    def zone_kb(self) -> dict:
        rows: list[list[str]] = []
        row: list[str] = []
        for zone in ALL_ZONES:
            row.append(zone_display_name(zone))
            if len(row) == 2:
                rows.append(row)
                row = []
        if row:
            rows.append(row)
        return {"keyboard": rows, "resize_keyboard": True, "one_time_keyboard": True}

    @staticmethod
    def _help_text() -> str:
        return (
            "💡 Бот графіків відключень ДТЕК\n\n"
            "Команди:\n"
            "/setgroup — обрати чергу і підписатися на сповіщення\n"
            "/mygroup — показати вашу чергу\n"
            "/schedule — графік на сьогодні та завтра\n"
            "/schedule 4.1 — графік для будь-якої черги\n"
            "/howto — як дізнатись свою чергу\n"
            "/stop — відписатися від сповіщень\n"
            "/help — показати допомогу"
        )

    @staticmethod
    def _welcome_text() -> str:
        return (
            "👋 Вітаю!\n\n"
            "Я стежу за графіком відключень ДТЕК і повідомлю, коли він зміниться "
            "або з'явиться розклад на завтра.\n\n"
            "Оберіть свою чергу кнопкою «📊 Обрати групу» або командою "
            "<code>/setgroup 4.1</code>."
        )

    def _howto_text(self) -> str:
        site = tg_escape(self.site_url.split("://", 1)[-1].removeprefix("www."))
        return (
            "❓ <b>Як дізнатись свою групу (чергу) відключень?</b>\n\n"
            "1️⃣ Перейдіть на сайт ДТЕК:\n"
            f'👉 <a href="{tg_escape(self.site_url)}">{site}</a>\n\n'
            "2️⃣ Введіть свою адресу:\n"
            "   • Населений пункт\n"
            "   • Вулицю\n"
            "   • Номер будинку\n\n"
            "3️⃣ Натисніть кнопку пошуку\n\n"
            "4️⃣ Ви побачите вашу чергу, наприклад:\n"
            "   <b>Черга 3.2</b>\n\n"
            "5️⃣ Поверніться сюди та натисніть\n"
            "   <b>📊 Обрати групу</b>\n"
            "   і оберіть вашу чергу зі списку.\n\n"
            "💡 Після цього ви будете отримувати сповіщення про зміни в графіку!"
        )

    def _reply(self, chat_id: int, text: str, *, reply_markup: dict | None = None) -> None:
        self.api.send_message(chat_id, text, reply_markup=reply_markup or self.main_kb)

    # Commands
    def _cmd_setgroup(self, chat_id: int, arg: str, username: str | None) -> None:
        if not arg:
            self._reply(chat_id, "Оберіть вашу чергу:", reply_markup=self.zone_kb)
            return
        zone = normalize_zone(arg)
        if zone is None:
            known = ", ".join(zone_display_name(z) for z in ALL_ZONES)
            self._reply(
                chat_id,
                f"❌ Невідома черга: <code>{tg_escape(arg)}</code>\n\n"
                f"Доступні черги: <code>{known}</code>",
            )
            return
        self.store.upsert(chat_id, zone, username)
        logger.info("Чат {} підписано на чергу {}", chat_id, zone)
        self._reply(
            chat_id,
            f"✅ Ви підписані на чергу <b>{zone_display_name(zone)}</b>.\n"
            "Я надішлю повідомлення, коли графік зміниться.",
        )

    def _cmd_mygroup(self, chat_id: int) -> None:
        zone = self.store.get_zone(chat_id)
        if zone is None:
            self._reply(chat_id, "Ви ще не обрали чергу. Використайте /setgroup.")
            return
        self._reply(chat_id, f"ℹ️ Ваша черга: <b>{zone_display_name(zone)}</b>")

    def _cmd_schedule(self, chat_id: int, arg: str) -> None:
        if arg:
            zone = normalize_zone(arg)
            if zone is None:
                self._reply(chat_id, f"❌ Невідома черга: <code>{tg_escape(arg)}</code>")
                return
        else:
            zone = self.store.get_zone(chat_id)
            if zone is None:
                self._reply(
                    chat_id,
                    "❌ Ви не підписані на жодну чергу.\n\n"
                    "Використовуйте /setgroup або вкажіть чергу: <code>/schedule 4.1</code>",
                )
                return
        self._reply(
            chat_id, format_schedule_view(zone, self.snapshot_provider(), timezone=self.tz)
        )

    def _cmd_stop(self, chat_id: int) -> None:
        if self.store.remove(chat_id):
            logger.info("Чат {} відписався", chat_id)
            self._reply(chat_id, "🔕 Ви відписалися від сповіщень.")
        else:
            self._reply(chat_id, "Ви і так не підписані.")

    def handle_text_message(self, chat_id: int, text: str, username: str | None = None) -> None:
        t = (text or "").strip()
        t = BUTTON_COMMANDS.get(t.lower(), t)
        # Bare zone from the zone keyboard
        if not t.startswith("/") and normalize_zone(t):
            t = f"/setgroup {t}"
        if not t.startswith("/"):
            return
        cmd, _, arg = t.partition(" ")
        cmd = cmd.split("@", 1)[0].lower()
        arg = arg.strip()

        if cmd == "/start":
            self._reply(chat_id, self._welcome_text())
        elif cmd == "/help":
            self._reply(chat_id, self._help_text())
        elif cmd == "/setgroup":
            self._cmd_setgroup(chat_id, arg, username)
        elif cmd == "/mygroup":
            self._cmd_mygroup(chat_id)
        elif cmd == "/schedule":
            self._cmd_schedule(chat_id, arg)
        elif cmd == "/howto":
            self._reply(chat_id, self._howto_text())
        elif cmd == "/stop":
            self._cmd_stop(chat_id)
        else:
            self._reply(chat_id, "❓ Невідома команда. Використовуйте /help.")

    def handle_update(self, upd: dict) -> None:
        msg = upd.get("message") or {}
        chat = msg.get("chat") or {}
        chat_id = chat.get("id")
        text = msg.get("text") or ""
        if not chat_id or not text:
            return
        username = (msg.get("from") or {}).get("username")
        try:
            self.handle_text_message(int(chat_id), text, username)
        except Exception:
            logger.exception("Помилка обробки повідомлення від {}", chat_id)

    # Long-polling loop
    def poll_forever(
        self,
        *,
        stop_event: threading.Event | None = None,
        long_poll_timeout: int = 25,
        sleep_on_error: int = 3,
    ) -> None:
        logger.info("Запуск Telegram бота (long polling)…")
        try:
            self.api.call("deleteWebhook", {"drop_pending_updates": True})
        except Exception:
            logger.debug("Не вдалося вимкнути webhook; продовжуємо long polling")
        stop = stop_event or threading.Event()
        fail_streak = 0
        while not stop.is_set():
            try:
                offset = self.last_update_id + 1 if self.last_update_id is not None else None
                res = self.api.get_updates(
                    offset=offset, timeout=long_poll_timeout, allowed_updates=["message"]
                )
                if not res.get("ok"):
                    logger.warning("Відповідь Telegram getUpdates: {}", res)
                    logged_sleep(
                        sleep_on_error, message="Пауза після відповіді Telegram", stop_event=stop
                    )
                    continue
                for upd in res.get("result", []):
                    self.last_update_id = int(upd.get("update_id", 0))
                    self.handle_update(upd)
                fail_streak = 0
            except (_urlerr.URLError, TimeoutError, ValueError) as e:
                fail_streak += 1
                backoff = min(60, sleep_on_error * (2 ** min(fail_streak, 3)))
                logger.warning(
                    "Збій long polling: {}. Повтор через {} с",
                    str(e).splitlines()[0] if str(e) else type(e).__name__,
                    backoff,
                )
                logged_sleep(backoff, message="Пауза після помилки long polling", stop_event=stop)
            except Exception as e:
                fail_streak += 1
                backoff = min(60, sleep_on_error * (2 ** min(fail_streak, 3)))
                logger.exception("Неочікувана помилка long polling: {}", e)
                logged_sleep(backoff, message="Пауза після помилки long polling", stop_event=stop)
        logger.info("Telegram бота зупинено")


def start_bot_background(
    bot: TelegramBot, *, stop_event: threading.Event | None = None
) -> threading.Thread:
    """Start the bot's long-polling loop in a daemon thread."""
    t = threading.Thread(
        target=bot.poll_forever,
        kwargs={"stop_event": stop_event},
        name="telegram-bot",
        daemon=True,
    )
    t.start()
    logger.info("Телеграм-бот запущено у фоні (long polling)…")
    return t
