"""
Package Cache — persistent, query-keyed cache of resolved package lists.

Entries are keyed by ``"<source>:<lowercased query>"`` and never expire under
the default configuration; they are overwritten on every new resolution and
only removed by an explicit clear. The whole map is persisted as one JSON
document, written in the background with an atomic replace.

Observers subscribe per key and are told when an existing entry is
overwritten, so views showing that query can refresh without polling.
"""

import asyncio
import json
import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import aiofiles
import aiofiles.os

from obision_store.models.package import CacheStats, PackageRecord, PackageSource

logger = logging.getLogger(__name__)

CacheCallback = Callable[[str, list[PackageRecord]], None]


def get_cache_key(source: PackageSource | str, query: str) -> str:
    """Build the cache key for a source and query (query is case-insensitive)."""
    if isinstance(source, PackageSource):
        source = source.value
    return f"{source}:{query.lower()}"


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class CacheEntry:
    """A cached resolution result."""

    data: list[PackageRecord] = field(default_factory=list)
    timestamp: int = 0  # epoch milliseconds
    query: str = ""

    def to_dict(self) -> dict:
        return {
            "data": [record.to_dict() for record in self.data],
            "timestamp": self.timestamp,
            "query": self.query,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CacheEntry":
        return cls(
            data=[PackageRecord.from_dict(item) for item in data.get("data", [])],
            timestamp=int(data.get("timestamp", 0)),
            query=data.get("query", ""),
        )


class PackageCache:
    """
    Persistent cache store with per-key change notification.

    All mutation is expected to happen on one event loop. Returned lists are
    fresh copies of immutable records, so callers can't reach stored state.
    """

    def __init__(self, cache_file: Path, max_age: float | None = None):
        self.cache_file = cache_file
        self.max_age = max_age  # seconds; None never expires
        self._entries: dict[str, CacheEntry] = {}
        self._subscribers: dict[str, list[CacheCallback]] = {}
        self._save_task: asyncio.Task | None = None
        self._dirty = False
        self._load()

    # ──────────────────────────────────────────────
    # Persistence
    # ──────────────────────────────────────────────

    def _load(self) -> None:
        """Load the cache document; any failure starts with an empty cache."""
        if not self.cache_file.exists():
            return

        try:
            with open(self.cache_file, encoding="utf-8") as f:
                raw = json.load(f)
            self._entries = {key: CacheEntry.from_dict(entry) for key, entry in raw.items()}
            logger.info(f"Cache loaded from {self.cache_file} ({len(self._entries)} entries)")
        except (OSError, json.JSONDecodeError, AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Error loading cache {self.cache_file}: {e}")
            self._entries = {}

    def _serialize(self) -> str:
        return json.dumps({key: entry.to_dict() for key, entry in self._entries.items()}, indent=2)

    def _tmp_file(self) -> Path:
        return self.cache_file.with_name(self.cache_file.name + ".tmp")

    def _save_sync(self) -> None:
        self._dirty = False
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._tmp_file()
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(self._serialize())
            os.replace(tmp, self.cache_file)
            logger.debug(f"Cache saved to {self.cache_file}")
        except OSError as e:
            logger.error(f"Error saving cache: {e}")

    async def _save_async(self) -> None:
        # Sets made while a write is in flight are folded into the next pass
        while self._dirty:
            self._dirty = False
            payload = self._serialize()
            try:
                self.cache_file.parent.mkdir(parents=True, exist_ok=True)
                tmp = self._tmp_file()
                async with aiofiles.open(tmp, "w", encoding="utf-8") as f:
                    await f.write(payload)
                await aiofiles.os.replace(tmp, self.cache_file)
                logger.debug(f"Cache saved to {self.cache_file}")
            except OSError as e:
                logger.error(f"Error saving cache: {e}")
                return

    def _schedule_save(self) -> None:
        """Persist the whole document without blocking the caller."""
        self._dirty = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._save_sync()
            return

        task = self._save_task
        if task is None or task.done() or task.get_loop() is not loop:
            self._save_task = loop.create_task(self._save_async())

    async def flush(self) -> None:
        """Wait for any background write to finish."""
        task = self._save_task
        if task is not None and not task.done():
            await task

    # ──────────────────────────────────────────────
    # Lookup
    # ──────────────────────────────────────────────

    def _is_expired(self, entry: CacheEntry) -> bool:
        if self.max_age is None:
            return False
        return _now_ms() - entry.timestamp > self.max_age * 1000

    def _live_entry(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._is_expired(entry):
            del self._entries[key]
            self._schedule_save()
            return None
        return entry

    def get(self, key: str) -> list[PackageRecord] | None:
        """Return a copy of the cached records for ``key``, or None."""
        entry = self._live_entry(key)
        if entry is None:
            return None
        logger.debug(f"Cache hit for key: {key}")
        return list(entry.data)

    def has(self, key: str) -> bool:
        return self._live_entry(key) is not None

    def get_cache_key(self, source: PackageSource | str, query: str) -> str:
        return get_cache_key(source, query)

    # ──────────────────────────────────────────────
    # Mutation
    # ──────────────────────────────────────────────

    def set(self, key: str, data: list[PackageRecord], query: str = "") -> None:
        """Store ``data`` under ``key``, replacing any previous entry."""
        is_update = key in self._entries
        entry = CacheEntry(data=list(data), timestamp=_now_ms(), query=query)
        self._entries[key] = entry
        self._schedule_save()
        logger.info(f"Cache set for key: {key} ({len(entry.data)} packages)")

        if is_update:
            self._notify(key, entry.data)

    def clear(self) -> None:
        """Drop every entry and persist the empty cache."""
        self._entries = {}
        self._schedule_save()
        logger.info("Cache cleared")

    def clear_expired(self) -> int:
        """Drop entries older than ``max_age``. Returns the number removed."""
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry)]
        for key in expired:
            del self._entries[key]

        if expired:
            self._schedule_save()
            logger.info(f"Cleared {len(expired)} expired cache entries")
        return len(expired)

    def get_stats(self) -> CacheStats:
        return CacheStats(
            entry_count=len(self._entries),
            total_record_count=sum(len(entry.data) for entry in self._entries.values()),
        )

    # ──────────────────────────────────────────────
    # Subscriptions
    # ──────────────────────────────────────────────

    def subscribe(self, key: str, callback: CacheCallback) -> None:
        """
        Register ``callback`` for overwrites of ``key``.

        Callers must unsubscribe when they stop displaying the key; the
        registry holds a strong reference to every callback.
        """
        self._subscribers.setdefault(key, []).append(callback)
        logger.debug(f"Subscribed to cache updates for key: {key}")

    def unsubscribe(self, key: str, callback: CacheCallback) -> None:
        callbacks = self._subscribers.get(key)
        if not callbacks:
            return
        if callback in callbacks:
            callbacks.remove(callback)
        if not callbacks:
            del self._subscribers[key]

    def subscriber_count(self, key: str) -> int:
        return len(self._subscribers.get(key, []))

    def _notify(self, key: str, data: list[PackageRecord]) -> None:
        callbacks = list(self._subscribers.get(key, []))
        if not callbacks:
            return

        logger.debug(f"Notifying {len(callbacks)} subscribers for key: {key}")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        for callback in callbacks:
            if loop is not None:
                loop.call_soon(self._dispatch, callback, key, list(data))
            else:
                self._dispatch(callback, key, list(data))

    @staticmethod
    def _dispatch(callback: CacheCallback, key: str, data: list[PackageRecord]) -> None:
        try:
            callback(key, data)
        except Exception:
            logger.exception(f"Cache subscriber failed for key: {key}")
