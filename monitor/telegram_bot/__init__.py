"""Telegram adapters: Bot API sink, subscriber store and command bot."""

from __future__ import annotations

from .core import DryRunSink, TelegramAPI, TelegramAPIError, TelegramNotifier
from .runtime import TelegramBot, start_bot_background
from .store import BaseSubscriberStore, FileSubscriberStore, SASubscriberStore, get_store

__all__ = [
    "BaseSubscriberStore",
    "DryRunSink",
    "FileSubscriberStore",
    "SASubscriberStore",
    "TelegramAPI",
    "TelegramAPIError",
    "TelegramBot",
    "TelegramNotifier",
    "get_store",
    "start_bot_background",
]
