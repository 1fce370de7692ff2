"""Hybrid resolver: turn a URL, ID or name into a canonical ID.

Stages run in order and stop at the first hit:

1. PARSER        URL or bare ID, no I/O
2. CACHE_EXACT   normalized title equality
3. CACHE_ALIAS   membership in an entry's aliases
4. CACHE_FUZZY   best edit-distance score over title and aliases
5. AUTO_SYNC     one sync, then stages 2-4 again (never a second sync)
6. REMOTE_SEARCH first result of a remote search filtered by kind

When every stage misses, NotFoundError lists the stages and their outcomes.
A stale cache is refreshed before stage 2 when auto-sync is on; if that
refresh fails the resolver carries on with the stale data and logs a warning.
A stale cache whose last sync attempt is younger than ``sync_retry_ms`` is
matched as is and the result is flagged stale.

Ties (several entries with the same exact title, alias or top fuzzy score)
go to the lexicographically smallest ID so the result does not depend on
entry order; the other IDs are reported in ``Resolution.alternatives``.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .aliases import normalize_title
from .clock import Clock, utc_now
from .config import ResolverConfig
from .directory import DirectoryServiceInterface
from .errors import NotFoundError, RemoteError
from .fuzzy import best_score
from .identifiers import normalize_id, parse_identifier
from .logging import setup_logging
from .models import CacheEntry, ObjectKind, WorkspaceCache
from .store import CacheStoreInterface
from .sync import SyncOrchestrator, SyncStatus

logger = setup_logging()


class ResolutionStage(str, Enum):
    PARSER = "parser"
    CACHE_EXACT = "cache_exact"
    CACHE_ALIAS = "cache_alias"
    CACHE_FUZZY = "cache_fuzzy"
    AUTO_SYNC = "auto_sync"
    REMOTE_SEARCH = "remote_search"


class ResolveOptions(BaseModel):
    """Per-call overrides. ``None`` means "use the resolver's config"."""

    model_config = {"frozen": True}

    include_archived: bool = False
    auto_sync: Optional[bool] = None
    fuzzy_threshold: Optional[float] = Field(None, ge=0.0, le=1.0)
    remote_search: bool = True


class Resolution(BaseModel):
    """A successful resolution.

    Attributes:
        id: Canonical ID
        stage: Stage that produced the match
        score: Similarity score (1.0 for everything but fuzzy matches)
        title: Cached or remote title, when known
        stale: True if the match came from a cache that could not be refreshed
        alternatives: Other IDs that tied with the chosen one
    """

    id: str
    stage: ResolutionStage
    score: float = 1.0
    title: Optional[str] = None
    stale: bool = False
    alternatives: list[str] = Field(default_factory=list)


def _pick(stage: ResolutionStage, matches: list[tuple[float, CacheEntry]]) -> Resolution:
    """Choose the highest score; equal scores go to the smallest ID."""
    ordered = sorted(matches, key=lambda match: (-match[0], match[1].id))
    best_score_value, best = ordered[0]
    alternatives = [entry.id for score_value, entry in ordered[1:] if score_value == best_score_value]
    if alternatives:
        logger.warning(
            {
                "message": f"Ambiguous {stage.value} match for {best.title!r}; using the smallest ID",
                "chosen": best.id,
                "alternatives": alternatives,
            }
        )
    return Resolution(id=best.id, stage=stage, score=best_score_value, title=best.title, alternatives=alternatives)


class Resolver:
    """Resolves user input through the cascade described in the module docstring."""

    def __init__(
        self,
        store: CacheStoreInterface,
        config: ResolverConfig,
        orchestrator: Optional[SyncOrchestrator] = None,
        directory: Optional[DirectoryServiceInterface] = None,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.config = config
        self.orchestrator = orchestrator
        self.directory = directory
        self.clock = clock

    async def resolve(self, value: str, kind: ObjectKind = "database", options: Optional[ResolveOptions] = None) -> str:
        """Resolve input to a canonical ID.

        Raises:
            ValidationError: If the input is empty or a malformed URL/ID
            NotFoundError: If no stage produced a match
        """
        resolution = await self.resolve_detailed(value, kind, options)
        return resolution.id

    async def resolve_detailed(
        self, value: str, kind: ObjectKind = "database", options: Optional[ResolveOptions] = None
    ) -> Resolution:
        options = options or ResolveOptions()
        stages: list[tuple[str, str]] = []

        parsed = parse_identifier(value, self.config.host_markers)
        if parsed.is_id:
            return Resolution(id=parsed.value, stage=ResolutionStage.PARSER)
        stages.append((ResolutionStage.PARSER.value, "not a URL or ID"))

        query = normalize_title(parsed.value)
        auto_sync = self.config.auto_sync if options.auto_sync is None else options.auto_sync
        can_sync = auto_sync and self.orchestrator is not None
        synced = False
        stale = False

        cache = await self.store.load()
        now = self.clock()
        if can_sync and cache.is_stale(self.config.cache_ttl_ms, now):
            if cache.attempted_within(self.config.sync_retry_ms, now):
                stale = True
                logger.debug(
                    {
                        "message": "Cache is stale but a sync was attempted recently, not refreshing",
                        "last_attempt": cache.last_attempt.isoformat(),
                    }
                )
            else:
                cache, stale = await self._refresh(cache, stages, reason="cache is stale")
                synced = True

        resolution = self._match_cache(cache, query, kind, options, stages)
        if resolution is None and can_sync and not synced:
            cache, stale = await self._refresh(cache, stages, reason="cache miss")
            synced = True
            resolution = self._match_cache(cache, query, kind, options, stages)
        if resolution is not None:
            resolution.stale = stale
            return resolution

        resolution = await self._search_remote(parsed.value, kind, options, stages)
        if resolution is not None:
            return resolution

        raise NotFoundError(value, kind, stages)

    async def _refresh(
        self, cache: WorkspaceCache, stages: list[tuple[str, str]], reason: str
    ) -> tuple[WorkspaceCache, bool]:
        """Run one sync. Returns the cache to match against and whether it is stale."""
        try:
            result = await self.orchestrator.sync()
        except RemoteError as exc:
            stages.append((ResolutionStage.AUTO_SYNC.value, f"failed: {exc}"))
            logger.warning(
                {
                    "message": "Workspace sync failed, resolving against possibly stale cache",
                    "reason": reason,
                    "last_sync": cache.last_sync.isoformat() if cache.last_sync else None,
                    "error": str(exc),
                }
            )
            return cache, True

        stages.append((ResolutionStage.AUTO_SYNC.value, f"{result.status.value} ({reason})"))
        if result.status == SyncStatus.SKIPPED_IN_PROGRESS:
            logger.warning({"message": "Another sync is in progress, resolving against current cache", "reason": reason})
        refreshed = await self.store.load()
        return refreshed, result.status != SyncStatus.COMPLETED

    def _match_cache(
        self,
        cache: WorkspaceCache,
        query: str,
        kind: ObjectKind,
        options: ResolveOptions,
        stages: list[tuple[str, str]],
    ) -> Optional[Resolution]:
        candidates = [
            entry for entry in cache.entries if entry.kind == kind and (options.include_archived or not entry.archived)
        ]

        exact = [(1.0, entry) for entry in candidates if entry.title_normalized == query]
        if exact:
            return _pick(ResolutionStage.CACHE_EXACT, exact)
        stages.append((ResolutionStage.CACHE_EXACT.value, f"no match among {len(candidates)} entries"))

        alias = [(1.0, entry) for entry in candidates if query in entry.aliases]
        if alias:
            return _pick(ResolutionStage.CACHE_ALIAS, alias)
        stages.append((ResolutionStage.CACHE_ALIAS.value, "no match"))

        threshold = self.config.fuzzy_threshold if options.fuzzy_threshold is None else options.fuzzy_threshold
        fuzzy = []
        for entry in candidates:
            entry_score = best_score(query, entry.lookup_keys())
            if entry_score >= threshold:
                fuzzy.append((entry_score, entry))
        if fuzzy:
            return _pick(ResolutionStage.CACHE_FUZZY, fuzzy)
        stages.append((ResolutionStage.CACHE_FUZZY.value, f"no candidate scored >= {threshold}"))
        return None

    async def _search_remote(
        self, query: str, kind: ObjectKind, options: ResolveOptions, stages: list[tuple[str, str]]
    ) -> Optional[Resolution]:
        stage = ResolutionStage.REMOTE_SEARCH.value
        if self.directory is None or not options.remote_search:
            stages.append((stage, "skipped"))
            return None
        try:
            results = await self.directory.search(query, kind)
        except RemoteError as exc:
            stages.append((stage, f"failed: {exc}"))
            logger.warning({"message": "Remote search failed", "query": query, "kind": kind, "error": str(exc)})
            return None
        if not results:
            stages.append((stage, "no results"))
            return None
        first = results[0]
        return Resolution(id=normalize_id(first.id), stage=ResolutionStage.REMOTE_SEARCH, title=first.title)
