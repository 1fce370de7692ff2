"""Full-workspace sync: list, fetch details, rebuild the cache, persist.

State progression for one run::

    IDLE -> LOCKING -> FETCHING -> DETAILING -> PERSISTING -> IDLE
                                  \\-> FAILED (partial progress still persisted)

A listing failure before anything was gathered aborts the run and leaves the
prior cache untouched. Per-item detail failures are recorded in
``syncErrors`` and the run carries on with the remaining items:

- transient failures make the run PARTIAL; the previous entry for that ID is
  kept and ``lastSync`` does not advance
- not-found or permission failures drop the entry; the run can still complete

Objects a complete listing no longer returns are removed. If the listing
itself was cut short, previous entries for the unseen pages are kept.
Every run that persists stamps ``lastAttempt``.
"""

import asyncio
import time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .aliases import generate_aliases, normalize_title
from .clock import Clock, utc_now
from .config import ResolverConfig
from .directory import DirectoryServiceInterface, RemoteDetail, RemoteSummary
from .errors import RemoteError, RemoteRequestError
from .lock import SyncLock
from .logging import setup_logging
from .models import CacheEntry, WorkspaceCache
from .store import CacheStoreInterface

logger = setup_logging()


class SyncState(str, Enum):
    IDLE = "idle"
    LOCKING = "locking"
    FETCHING = "fetching"
    DETAILING = "detailing"
    PERSISTING = "persisting"
    FAILED = "failed"


class SyncStatus(str, Enum):
    COMPLETED = "completed"
    PARTIAL = "partial"
    SKIPPED_IN_PROGRESS = "skipped_in_progress"
    SKIPPED_FRESH = "skipped_fresh"


class SyncResult(BaseModel):
    """Outcome of one sync request.

    Attributes:
        status: What happened; the skipped statuses are not errors
        listed: Summaries returned by the listing endpoint
        cached: Entries in the cache after the run
        failed: Items whose detail failed transiently; their previous entries are kept
        dropped: Items the remote refused (not found, no access); removed from the cache
        errors: Human-readable failure messages recorded during the run
        duration_ms: Wall time of the run
        cache_path: Where the cache was persisted
    """

    status: SyncStatus
    listed: int = 0
    cached: int = 0
    failed: int = 0
    dropped: int = 0
    errors: list[str] = Field(default_factory=list)
    duration_ms: int = 0
    cache_path: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == SyncStatus.COMPLETED


def build_cache_entry(detail: RemoteDetail) -> CacheEntry:
    """Build a cache entry from a detail response: normalize, derive aliases, copy metadata."""
    return CacheEntry(
        id=detail.id,
        title=detail.title,
        title_normalized=normalize_title(detail.title),
        aliases=generate_aliases(detail.title),
        kind=detail.kind,
        archived=detail.archived,
        url=detail.url,
        last_edited_time=detail.last_edited_time,
        property_summary=dict(detail.property_summary),
    )


class SyncOrchestrator:
    """Rebuilds the workspace cache from the remote directory.

    Only one run per process is active at a time; across processes the
    SyncLock prevents redundant runs on a best-effort basis.
    """

    def __init__(
        self,
        directory: DirectoryServiceInterface,
        store: CacheStoreInterface,
        lock: SyncLock,
        config: ResolverConfig,
        clock: Clock = utc_now,
    ):
        self.directory = directory
        self.store = store
        self.lock = lock
        self.config = config
        self.clock = clock
        self.state = SyncState.IDLE

    async def sync(self) -> SyncResult:
        """Run one full sync.

        Returns:
            SyncResult; SKIPPED_IN_PROGRESS if another process holds the lock

        Raises:
            RemoteError: If the very first listing call fails
        """
        started = time.monotonic()
        self.state = SyncState.LOCKING
        try:
            async with self.lock.hold() as acquired:
                if not acquired:
                    self.state = SyncState.IDLE
                    logger.info({"message": "Sync already in progress elsewhere, skipping", "lock_file": str(self.lock.path)})
                    return SyncResult(status=SyncStatus.SKIPPED_IN_PROGRESS)
                result = await self._run()
        except BaseException:
            self.state = SyncState.FAILED
            raise
        result.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(result)
        return result

    async def _run(self) -> SyncResult:
        errors: list[tuple[Optional[str], str]] = []

        self.state = SyncState.FETCHING
        summaries, listing_complete = await self._list_all(errors)

        self.state = SyncState.DETAILING
        entries, failed_ids, dropped_ids = await self._fetch_entries(summaries, errors)

        self.state = SyncState.PERSISTING
        cache = await self.store.load()
        now = self.clock()
        partial = bool(failed_ids) or not listing_complete
        if listing_complete:
            kept = [entry for entry in cache.entries if entry.id in failed_ids]
        else:
            # Objects on the pages we never saw may still exist.
            refreshed = {entry.id for entry in entries}
            kept = [entry for entry in cache.entries if entry.id not in refreshed and entry.id not in dropped_ids]

        new_cache = WorkspaceCache(
            last_sync=cache.last_sync if partial else now,
            last_attempt=now,
            entries=entries + kept,
            sync_errors=list(cache.sync_errors),
        )
        for item_id, message in errors:
            new_cache.record_sync_error(message, now, item_id=item_id, limit=self.config.max_sync_errors)

        if dropped_ids:
            logger.info(
                {
                    "message": f"Dropped {len(dropped_ids)} object(s) that could not be read",
                    "ids": sorted(dropped_ids),
                }
            )
        if partial:
            status = SyncStatus.PARTIAL
            logger.warning(
                {
                    "message": f"Sync finished with {len(errors)} error(s); kept {len(kept)} previous entries",
                    "errors": [message for _, message in errors],
                }
            )
        else:
            status = SyncStatus.COMPLETED
        await self.store.save(new_cache)
        self.state = SyncState.IDLE if status == SyncStatus.COMPLETED else SyncState.FAILED

        return SyncResult(
            status=status,
            listed=len(summaries),
            cached=len(new_cache.entries),
            failed=len(failed_ids),
            dropped=len(dropped_ids),
            errors=[message for _, message in errors],
            cache_path=str(getattr(self.store, "path", "")) or None,
        )

    async def _list_all(self, errors: list[tuple[Optional[str], str]]) -> tuple[list[RemoteSummary], bool]:
        """Page through the listing. The flag is False if it was cut short by an error."""
        summaries: list[RemoteSummary] = []
        seen: set[str] = set()
        token: Optional[str] = None
        while True:
            try:
                page, token = await self.directory.list_summaries(token)
            except RemoteError as exc:
                if not summaries:
                    logger.error({"message": "Listing failed before any objects were gathered, sync aborted", "error": str(exc)})
                    raise
                errors.append((None, f"listing stopped after {len(summaries)} objects: {exc}"))
                return summaries, False
            for summary in page:
                if summary.id not in seen:
                    seen.add(summary.id)
                    summaries.append(summary)
            if not token:
                break
        logger.debug({"message": f"Listed {len(summaries)} objects"})
        return summaries, True

    async def _fetch_entries(
        self, summaries: list[RemoteSummary], errors: list[tuple[Optional[str], str]]
    ) -> tuple[list[CacheEntry], set[str], set[str]]:
        """Fetch details with bounded concurrency.

        Returns:
            (entries, failed_ids, dropped_ids). Transient failures land in
            failed_ids; objects the remote refuses outright (not found, no
            access) land in dropped_ids and are removed from the cache.
        """
        semaphore = asyncio.Semaphore(self.config.sync_concurrency)
        failed_ids: set[str] = set()
        dropped_ids: set[str] = set()

        async def fetch(summary: RemoteSummary) -> Optional[CacheEntry]:
            async with semaphore:
                try:
                    detail = await self.directory.get_detail(summary.id, summary.kind)
                except RemoteRequestError as exc:
                    dropped_ids.add(summary.id)
                    errors.append((summary.id, f"{summary.id} ({summary.title}) dropped: {exc}"))
                    return None
                except RemoteError as exc:
                    failed_ids.add(summary.id)
                    errors.append((summary.id, f"{summary.id} ({summary.title}): {exc}"))
                    return None
            return build_cache_entry(detail)

        results = await asyncio.gather(*[fetch(summary) for summary in summaries])
        entries: dict[str, CacheEntry] = {}
        for entry in results:
            if entry is not None:
                entries.setdefault(entry.id, entry)
        return list(entries.values()), failed_ids, dropped_ids
