"""Persistent storage for the workspace cache.

JsonFileCacheStore keeps the whole WorkspaceCache in one JSON document:

- Missing file: a fresh empty cache is written and returned.
- Unparseable file, schema violation or unknown version: the file is renamed
  to ``<name>.corrupt-<timestamp>`` and replaced with a fresh empty cache.
  This is logged, never raised.
- Writes go to a temp file in the same directory followed by ``os.replace``,
  so readers never observe a partially written document.

File I/O runs in worker threads via ``asyncio.to_thread``.
"""

import asyncio
import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError as SchemaError

from .clock import Clock, utc_now
from .config import ensure_private_dir
from .errors import CacheCorruptedError
from .logging import setup_logging
from .models import (
    CACHE_VERSION,
    LEGACY_CACHE_VERSIONS,
    CacheEntry,
    CacheStats,
    WorkspaceCache,
    migrate_legacy_document,
)

logger = setup_logging()


class CacheStoreInterface(ABC):
    """Abstract interface for persisting a WorkspaceCache.

    Implementations must make ``save`` atomic with respect to concurrent
    readers and must treat a damaged document as recoverable.
    """

    @abstractmethod
    async def load(self) -> WorkspaceCache:
        """Return the persisted cache, or a fresh empty one if none is usable."""

    @abstractmethod
    async def save(self, cache: WorkspaceCache) -> None:
        """Persist the whole cache document."""

    @abstractmethod
    async def upsert(self, entry: CacheEntry) -> WorkspaceCache:
        """Insert or replace one entry by id without touching ``last_sync``."""

    @abstractmethod
    async def clear(self) -> WorkspaceCache:
        """Reset the persisted cache to an empty document."""

    @abstractmethod
    async def stats(self, ttl_ms: int) -> CacheStats:
        """Summarize the persisted cache."""


class JsonFileCacheStore(CacheStoreInterface):
    """JSON file-based implementation of CacheStoreInterface.

    Attributes:
        path: Location of the cache document
        clock: Source of "now" for backups and staleness
    """

    def __init__(self, path: Path, clock: Clock = utc_now):
        self.path = Path(path)
        self.clock = clock

    # --- public API ---

    async def load(self) -> WorkspaceCache:
        return await asyncio.to_thread(self._load_sync)

    async def save(self, cache: WorkspaceCache) -> None:
        await asyncio.to_thread(self._save_sync, cache)

    async def upsert(self, entry: CacheEntry) -> WorkspaceCache:
        cache = await self.load()
        replaced = cache.upsert(entry)
        await self.save(cache)
        logger.debug(
            {
                "message": f"{'Replaced' if replaced else 'Added'} cache entry {entry.id}",
                "title": entry.title,
                "cache_file": str(self.path),
            }
        )
        return cache

    async def clear(self) -> WorkspaceCache:
        cache = WorkspaceCache.empty()
        await self.save(cache)
        logger.info({"message": "Cleared workspace cache", "cache_file": str(self.path)})
        return cache

    async def stats(self, ttl_ms: int) -> CacheStats:
        cache = await self.load()
        now = self.clock()
        size = await asyncio.to_thread(self._file_size)
        return CacheStats(
            count=len(cache.entries),
            age_ms=cache.age_ms(now),
            size_bytes=size,
            last_sync=cache.last_sync,
            last_attempt=cache.last_attempt,
            is_stale=cache.is_stale(ttl_ms, now),
            version=cache.version,
            path=str(self.path),
            sync_error_count=len(cache.sync_errors),
        )

    # --- synchronous helpers (run in worker threads) ---

    def _file_size(self) -> int:
        try:
            return self.path.stat().st_size
        except FileNotFoundError:
            return 0

    def _load_sync(self) -> WorkspaceCache:
        try:
            return self._read()
        except FileNotFoundError:
            logger.debug({"message": "Cache file does not exist, creating it", "cache_file": str(self.path)})
        except CacheCorruptedError as exc:
            backup = self._backup_corrupt_file()
            logger.warning(
                {
                    "message": "Cache file is corrupted, backed up and reset",
                    "cache_file": str(self.path),
                    "backup_file": str(backup) if backup else None,
                    "reason": exc.reason,
                }
            )
        cache = WorkspaceCache.empty()
        self._save_sync(cache)
        return cache

    def _read(self) -> WorkspaceCache:
        with open(self.path, "rb") as f:
            raw = f.read()
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise CacheCorruptedError(self.path, f"invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise CacheCorruptedError(self.path, "top-level value is not an object")

        version = data.get("version")
        if version in LEGACY_CACHE_VERSIONS:
            logger.info(
                {
                    "message": f"Migrating cache from version {version} to {CACHE_VERSION}",
                    "cache_file": str(self.path),
                    "entries": len(data.get("databases") or []),
                }
            )
            data = self._migrate(data)
        elif version != CACHE_VERSION:
            raise CacheCorruptedError(self.path, f"unrecognized version {version!r}")

        try:
            return WorkspaceCache.model_validate(data)
        except SchemaError as exc:
            raise CacheCorruptedError(self.path, f"schema validation failed: {exc.error_count()} error(s)") from exc

    def _migrate(self, data: dict[str, Any]) -> dict[str, Any]:
        try:
            return migrate_legacy_document(data)
        except (KeyError, TypeError, AttributeError) as exc:
            raise CacheCorruptedError(self.path, f"legacy document could not be migrated: {exc}") from exc

    def _backup_corrupt_file(self) -> Optional[Path]:
        stamp = self.clock().strftime("%Y%m%dT%H%M%S%fZ")
        backup = self.path.with_name(f"{self.path.name}.corrupt-{stamp}")
        try:
            os.replace(self.path, backup)
        except FileNotFoundError:
            return None
        return backup

    def _save_sync(self, cache: WorkspaceCache) -> None:
        """Write to a temp file then rename over the target."""
        ensure_private_dir(self.path.parent)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=self.path.name + ".", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(cache.to_json_dict(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise
        logger.debug(
            {
                "message": f"Saved {len(cache.entries)} cache entries",
                "cache_file": str(self.path),
            }
        )
