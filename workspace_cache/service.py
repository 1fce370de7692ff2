"""Operations exposed to the command-line layer.

WorkspaceCacheService wires the store, lock, sync orchestrator and resolver
together from one ResolverConfig. The CLI owns argument parsing and output
formatting; everything here returns plain models or raises from errors.py.

Example:
    ```python
    service = WorkspaceCacheService.from_env()
    try:
        database_id = await service.resolve("Tasks", kind="database")
    finally:
        await service.aclose()
    ```
"""

from typing import Optional

from .clock import Clock, utc_now
from .config import ResolverConfig, load_config
from .directory import DirectoryServiceInterface, RemoteDetail
from .errors import WorkspaceCacheError
from .lock import SyncLock
from .logging import setup_logging
from .models import CacheEntry, CacheFilter, CacheStats, ObjectKind
from .notion_client import NotionDirectoryService
from .resolver import Resolution, ResolveOptions, Resolver
from .retry import RetryPolicy
from .store import CacheStoreInterface, JsonFileCacheStore
from .sync import SyncOrchestrator, SyncResult, SyncStatus, build_cache_entry

logger = setup_logging()


class WorkspaceCacheService:
    def __init__(
        self,
        config: Optional[ResolverConfig] = None,
        directory: Optional[DirectoryServiceInterface] = None,
        store: Optional[CacheStoreInterface] = None,
        lock: Optional[SyncLock] = None,
        clock: Clock = utc_now,
    ):
        self.config = config or load_config()
        self.clock = clock
        self.directory = directory
        self.store = store or JsonFileCacheStore(self.config.cache_path, clock=clock)
        self.lock = lock or SyncLock(self.config.lock_path, stale_after_ms=self.config.lock_stale_ms, clock=clock)
        self.orchestrator = (
            SyncOrchestrator(directory, self.store, self.lock, self.config, clock=clock) if directory is not None else None
        )
        self.resolver = Resolver(
            self.store,
            self.config,
            orchestrator=self.orchestrator,
            directory=directory,
            clock=clock,
        )

    @classmethod
    def from_env(cls, token: Optional[str] = None, config: Optional[ResolverConfig] = None) -> "WorkspaceCacheService":
        """Build a service backed by the Notion API, configured from the environment."""
        directory = NotionDirectoryService(token=token, retry_policy=RetryPolicy.from_env())
        return cls(config=config or load_config(), directory=directory)

    async def aclose(self) -> None:
        if isinstance(self.directory, NotionDirectoryService):
            await self.directory.aclose()

    async def resolve(self, value: str, kind: ObjectKind = "database", options: Optional[ResolveOptions] = None) -> str:
        return await self.resolver.resolve(value, kind, options)

    async def resolve_detailed(
        self, value: str, kind: ObjectKind = "database", options: Optional[ResolveOptions] = None
    ) -> Resolution:
        return await self.resolver.resolve_detailed(value, kind, options)

    async def sync(self, force: bool = False) -> SyncResult:
        """Refresh the cache from the remote directory.

        Args:
            force: Sync even if the cache is younger than the configured TTL

        Raises:
            WorkspaceCacheError: If no directory service is configured
            RemoteError: If the initial listing call fails
        """
        if self.orchestrator is None:
            raise WorkspaceCacheError("No remote directory service configured; cannot sync")
        if not force:
            cache = await self.store.load()
            if not cache.is_stale(self.config.cache_ttl_ms, self.clock()):
                logger.info({"message": "Cache is fresh, skipping sync", "last_sync": cache.last_sync})
                return SyncResult(
                    status=SyncStatus.SKIPPED_FRESH,
                    cached=len(cache.entries),
                    cache_path=str(self.config.cache_path),
                )
        return await self.orchestrator.sync()

    async def list_cached(self, cache_filter: Optional[CacheFilter] = None) -> list[CacheEntry]:
        cache_filter = cache_filter or CacheFilter()
        cache = await self.store.load()
        return [entry for entry in cache.entries if cache_filter.matches(entry)]

    async def clear_cache(self) -> None:
        await self.store.clear()

    async def cache_stats(self) -> CacheStats:
        return await self.store.stats(self.config.cache_ttl_ms)

    async def record_remote_object(self, detail: RemoteDetail) -> CacheEntry:
        """Upsert one object after a mutation (e.g. creating a database) without a full sync."""
        entry = build_cache_entry(detail)
        await self.store.upsert(entry)
        return entry
