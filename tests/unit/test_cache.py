from __future__ import annotations

import json
from datetime import timedelta

from windscribe_port_sync.cache import PortCache
from tests.unit._fakes import FakeClock


def test_entry_expires_with_ttl():
    clock = FakeClock()
    cache = PortCache(clock=clock)
    assert cache.set("port", 51413, timedelta(seconds=60))
    assert cache.get("port") == 51413

    clock.advance(60)
    assert cache.get("port") is None
    assert cache.get_entry("port") is None


def test_non_positive_ttl_is_not_stored():
    cache = PortCache(clock=FakeClock())
    cache.set("port", 1, timedelta(hours=1))
    assert not cache.set("port", 2, timedelta(0))
    assert cache.get("port") is None


def test_persists_to_file_and_reloads(tmp_path):
    clock = FakeClock()
    path = tmp_path / "nested" / "cache.json"
    cache = PortCache(str(path), namespace="windscribe", clock=clock)
    cache.set("session", "abc", timedelta(hours=1))

    raw = json.loads(path.read_text())
    assert raw["windscribe:session"]["value"] == "abc"

    reloaded = PortCache(str(path), namespace="windscribe", clock=clock)
    entry = reloaded.get_entry("session")
    assert entry.value == "abc"
    assert entry.expires_at == clock.now() + timedelta(hours=1)


def test_unreadable_file_starts_empty(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text("not json")
    cache = PortCache(str(path), clock=FakeClock())
    assert cache.get("session") is None


def test_delete_missing_key_is_noop():
    cache = PortCache(clock=FakeClock())
    cache.delete("nothing")
    assert cache.get("nothing") is None


def test_write_failure_keeps_value_in_memory(tmp_path, caplog):
    blocker = tmp_path / "cache"
    blocker.write_text("a regular file, not a directory")
    cache = PortCache(str(blocker / "cache.json"), clock=FakeClock())

    with caplog.at_level("WARNING", logger="port-sync"):
        assert cache.set("port", 51413, timedelta(hours=1))

    assert cache.get("port") == 51413
    assert "Failed to write cache file" in caplog.text


def test_bad_expiry_in_file_starts_empty(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text(json.dumps({"windscribe:port": {"value": 1, "expires": "garbage"}}))
    cache = PortCache(str(path), namespace="windscribe", clock=FakeClock())
    assert cache.get("port") is None


def test_non_object_file_starts_empty(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text("[1, 2]")
    cache = PortCache(str(path), clock=FakeClock())
    assert cache.get("port") is None
    assert cache.set("port", 2, timedelta(hours=1))
    assert json.loads(path.read_text())["port"]["value"] == 2
