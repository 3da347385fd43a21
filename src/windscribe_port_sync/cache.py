"""Key-value cache with per-key expiry, optionally persisted to a JSON file."""

import json
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    expires_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class PortCache:
    """
    Thread-safe TTL cache.

    Keys are prefixed with a namespace so several components can share one
    file. When ``path`` is None nothing is written to disk and the cache only
    lives as long as the process.
    """

    def __init__(
        self,
        path: str | None = None,
        namespace: str = "",
        clock: Clock | None = None,
        logger: logging.Logger | None = None,
    ):
        self.path = path
        self.namespace = namespace
        self.clock = clock or SystemClock()
        self.logger = logger or logging.getLogger("port-sync")
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}
        self._load()

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}" if self.namespace else key

    def _load(self) -> None:
        if not self.path or not os.path.exists(self.path):
            return

        try:
            with open(self.path, encoding="utf-8") as f:
                raw = json.load(f)
            if not isinstance(raw, dict):
                raise ValueError("top level is not an object")

            entries = {}
            for key, item in raw.items():
                if not isinstance(item, dict):
                    raise ValueError(f"entry {key} is not an object")
                expires_at = None
                if item.get("expires"):
                    expires_at = datetime.fromisoformat(item["expires"])
                    if expires_at.tzinfo is None:
                        expires_at = expires_at.replace(tzinfo=timezone.utc)
                entries[key] = CacheEntry(value=item.get("value"), expires_at=expires_at)
        except (OSError, ValueError, TypeError) as e:
            self.logger.warning(f"Ignoring unreadable cache file {self.path}: {e}")
            return

        self._entries.update(entries)

    def _save(self) -> None:
        """Write all entries to disk. Failures keep the in-memory copy and are only logged."""
        if not self.path:
            return

        data = {
            key: {
                "value": entry.value,
                "expires": entry.expires_at.isoformat() if entry.expires_at else None,
            }
            for key, entry in self._entries.items()
        }
        tmp_path = f"{self.path}.tmp"
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_path, self.path)
        except OSError as e:
            self.logger.warning(f"Failed to write cache file {self.path}: {e}")

    def get_entry(self, key: str) -> CacheEntry | None:
        """Return the entry for ``key``, or None if absent or expired."""
        full_key = self._key(key)
        with self._lock:
            entry = self._entries.get(full_key)
            if entry is None:
                return None

            if entry.is_expired(self.clock.now()):
                del self._entries[full_key]
                self._save()
                return None

            return entry

    def get(self, key: str) -> Any:
        entry = self.get_entry(key)
        return None if entry is None else entry.value

    def set(self, key: str, value: Any, ttl: timedelta | None = None) -> bool:
        """
        Store ``value`` under ``key``.

        A ttl of zero or less means the value is already stale: the key is
        removed instead and False is returned.
        """
        if ttl is not None and ttl <= timedelta(0):
            self.delete(key)
            return False

        expires_at = None if ttl is None else self.clock.now() + ttl
        with self._lock:
            self._entries[self._key(key)] = CacheEntry(value, expires_at)
            self._save()
        return True

    def delete(self, key: str) -> None:
        with self._lock:
            if self._entries.pop(self._key(key), None) is not None:
                self._save()
