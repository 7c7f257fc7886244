"""Subscriber storage: chat id -> zone subscriptions.

If DATABASE_URL is provided, uses SQLAlchemy (PostgreSQL). Otherwise, falls back
to a JSON file under the Telegram persist directory.
"""

from __future__ import annotations

import json
import os
import threading

from loguru import logger
from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    MetaData,
    String,
    Table,
    create_engine,
    delete,
    func,
    select,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.engine import Engine


class BaseSubscriberStore:
    def get_zone(self, chat_id: int) -> str | None:  # pragma: no cover - interface
        raise NotImplementedError

    def upsert(
        self, chat_id: int, zone: str, username: str | None = None
    ) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def remove(self, chat_id: int) -> bool:  # returns True if existed
        raise NotImplementedError

    def subscriptions_by_zone(self) -> dict[str, set[int]]:  # pragma: no cover - interface
        raise NotImplementedError


# -------------------- File store --------------------


def read_json(path: str, default):
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return default
    except (OSError, ValueError) as e:
        logger.warning("Не вдалося прочитати JSON '{}': {}", path, e)
        return default


def write_json(path: str, obj) -> None:
    d = os.path.dirname(path)
    if d and not os.path.isdir(d):
        os.makedirs(d, exist_ok=True)
    tmp = path + ".tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(obj, f, ensure_ascii=False, indent=2)
    os.replace(tmp, path)


class FileSubscriberStore(BaseSubscriberStore):
    """JSON file `{chat_id: {"zone": ..., "username": ...}}`; safe across bot/monitor threads."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        raw = read_json(path, {})
        self.records: dict[str, dict[str, str | None]] = {}
        if isinstance(raw, dict):
            for k, v in raw.items():
                if isinstance(v, dict) and v.get("zone"):
                    self.records[str(k)] = {
                        "zone": str(v["zone"]),
                        "username": v.get("username"),
                    }

    def _save(self) -> None:
        write_json(self.path, self.records)

    def get_zone(self, chat_id: int) -> str | None:
        with self._lock:
            rec = self.records.get(str(chat_id))
            return rec["zone"] if rec else None

    def upsert(self, chat_id: int, zone: str, username: str | None = None) -> None:
        with self._lock:
            self.records[str(chat_id)] = {"zone": zone, "username": username}
            self._save()

    def remove(self, chat_id: int) -> bool:
        with self._lock:
            if self.records.pop(str(chat_id), None) is None:
                return False
            self._save()
            return True

    def subscriptions_by_zone(self) -> dict[str, set[int]]:
        with self._lock:
            out: dict[str, set[int]] = {}
            for chat_id, rec in self.records.items():
                out.setdefault(str(rec["zone"]), set()).add(int(chat_id))
            return out


# -------------------- SQLAlchemy store --------------------


class SASubscriberStore(BaseSubscriberStore):
    """SQLAlchemy-based PostgreSQL store."""

    def __init__(self, database_url: str):
        self.database_url = self._normalize_url(database_url)
        self.engine: Engine = create_engine(self.database_url, future=True, pool_pre_ping=True)
        self.meta = MetaData()
        self.subscribers = Table(
            "subscribers",
            self.meta,
            Column("chat_id", BigInteger, primary_key=True, autoincrement=False),
            Column("zone", String(10), nullable=False, index=True),
            Column("username", String(100), nullable=True),
            Column(
                "created_at", DateTime(timezone=True), server_default=func.now(), nullable=False
            ),
            Column(
                "updated_at", DateTime(timezone=True), server_default=func.now(), nullable=False
            ),
        )
        self.meta.create_all(self.engine, tables=[self.subscribers])

    @staticmethod
    def _normalize_url(url: str) -> str:
        # If driver not specified, default to pg8000 to avoid psycopg dependency
        if url.startswith("postgres://"):
            url = "postgresql://" + url[len("postgres://") :]
        if url.startswith("postgresql://") and "+" not in url.split("://", 1)[1].split(":", 1)[0]:
            return url.replace("postgresql://", "postgresql+pg8000://", 1)
        return url

    def get_zone(self, chat_id: int) -> str | None:
        try:
            with self.engine.connect() as conn:
                stmt = select(self.subscribers.c.zone).where(
                    self.subscribers.c.chat_id == chat_id
                )
                row = conn.execute(stmt).fetchone()
                return row[0] if row else None
        except Exception:
            logger.exception("Не вдалося прочитати чергу підписника з БД")
            return None

    def upsert(self, chat_id: int, zone: str, username: str | None = None) -> None:
        with self.engine.begin() as conn:
            stmt = pg_insert(self.subscribers).values(
                chat_id=chat_id, zone=zone, username=username
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[self.subscribers.c.chat_id],
                set_={"zone": zone, "username": username, "updated_at": func.now()},
            )
            conn.execute(stmt)

    def remove(self, chat_id: int) -> bool:
        with self.engine.begin() as conn:
            res = conn.execute(
                delete(self.subscribers).where(self.subscribers.c.chat_id == chat_id)
            )
            return (res.rowcount or 0) > 0

    def subscriptions_by_zone(self) -> dict[str, set[int]]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(self.subscribers.c.zone, self.subscribers.c.chat_id)
            ).fetchall()
        out: dict[str, set[int]] = {}
        for zone, chat_id in rows:
            out.setdefault(str(zone), set()).add(int(chat_id))
        return out


def get_store(database_url: str | None, persist_dir: str) -> BaseSubscriberStore:
    if database_url:
        try:
            return SASubscriberStore(database_url)
        except Exception:
            logger.exception("Сховище БД (SQLAlchemy) недоступне; використовується файлове")
    return FileSubscriberStore(os.path.join(persist_dir, "subscribers.json"))
