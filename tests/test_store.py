from __future__ import annotations

import json

from monitor.telegram_bot.store import FileSubscriberStore, SASubscriberStore, get_store


def test_file_store_persists_and_groups_by_zone(tmp_path):
    path = tmp_path / "tg" / "subscribers.json"
    store = FileSubscriberStore(str(path))
    store.upsert(1, "GPV1.1", "alice")
    store.upsert(2, "GPV1.1")
    store.upsert(3, "GPV4.1")
    store.upsert(3, "GPV1.2")

    assert store.get_zone(3) == "GPV1.2"
    assert store.subscriptions_by_zone() == {"GPV1.1": {1, 2}, "GPV1.2": {3}}

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["1"] == {"zone": "GPV1.1", "username": "alice"}

    reloaded = FileSubscriberStore(str(path))
    assert reloaded.subscriptions_by_zone() == store.subscriptions_by_zone()


def test_file_store_remove(tmp_path):
    store = FileSubscriberStore(str(tmp_path / "subscribers.json"))
    store.upsert(10, "GPV2.1")
    assert store.remove(10) is True
    assert store.remove(10) is False
    assert store.get_zone(10) is None
    assert store.subscriptions_by_zone() == {}


def test_file_store_skips_broken_records(tmp_path):
    path = tmp_path / "subscribers.json"
    path.write_text(json.dumps({"5": {"zone": "GPV3.1"}, "6": "junk", "7": {}}), encoding="utf-8")
    store = FileSubscriberStore(str(path))
    assert store.subscriptions_by_zone() == {"GPV3.1": {5}}


def test_file_store_tolerates_corrupt_file(tmp_path):
    path = tmp_path / "subscribers.json"
    path.write_text("{not json", encoding="utf-8")
    store = FileSubscriberStore(str(path))
    assert store.subscriptions_by_zone() == {}


def test_get_store_falls_back_to_file_store(tmp_path):
    store = get_store(None, str(tmp_path))
    assert isinstance(store, FileSubscriberStore)
    assert store.path.endswith("subscribers.json")


def test_database_url_defaults_to_pg8000_driver():
    norm = SASubscriberStore._normalize_url
    assert norm("postgres://u:p@h/db") == "postgresql+pg8000://u:p@h/db"
    assert norm("postgresql://u:p@h/db") == "postgresql+pg8000://u:p@h/db"
    assert norm("postgresql+psycopg://u:p@h/db") == "postgresql+psycopg://u:p@h/db"
    assert norm("sqlite:///x.db") == "sqlite:///x.db"
