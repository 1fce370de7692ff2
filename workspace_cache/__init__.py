"""
Workspace cache and hybrid resolver for Notion identifiers.

Turns a URL, a raw object ID, or a name/alias into a canonical 32-hex ID,
using a locally persisted workspace cache and falling back to the remote
API when the cache is stale or has no match.
"""

from workspace_cache.aliases import generate_aliases, normalize_title
from workspace_cache.config import ResolverConfig, load_config
from workspace_cache.directory import DirectoryServiceInterface, RemoteDetail, RemoteSummary
from workspace_cache.errors import (
    CacheCorruptedError,
    NotFoundError,
    RateLimitedError,
    RemoteError,
    RemoteRequestError,
    RemoteUnavailableError,
    ValidationError,
    WorkspaceCacheError,
)
from workspace_cache.fuzzy import edit_distance, score
from workspace_cache.identifiers import ParsedIdentifier, parse_identifier
from workspace_cache.lock import SyncLock
from workspace_cache.models import CacheEntry, CacheFilter, CacheStats, WorkspaceCache
from workspace_cache.resolver import Resolution, ResolutionStage, ResolveOptions, Resolver
from workspace_cache.retry import RetryPolicy
from workspace_cache.service import WorkspaceCacheService
from workspace_cache.store import CacheStoreInterface, JsonFileCacheStore
from workspace_cache.sync import SyncOrchestrator, SyncResult, SyncStatus

__all__ = [
    "CacheCorruptedError",
    "CacheEntry",
    "CacheFilter",
    "CacheStats",
    "CacheStoreInterface",
    "DirectoryServiceInterface",
    "JsonFileCacheStore",
    "NotFoundError",
    "ParsedIdentifier",
    "RateLimitedError",
    "RemoteDetail",
    "RemoteError",
    "RemoteRequestError",
    "RemoteSummary",
    "RemoteUnavailableError",
    "Resolution",
    "ResolutionStage",
    "ResolveOptions",
    "Resolver",
    "ResolverConfig",
    "RetryPolicy",
    "SyncLock",
    "SyncOrchestrator",
    "SyncResult",
    "SyncStatus",
    "ValidationError",
    "WorkspaceCache",
    "WorkspaceCacheError",
    "WorkspaceCacheService",
    "edit_distance",
    "generate_aliases",
    "load_config",
    "normalize_title",
    "parse_identifier",
    "score",
]

__version__ = "0.1.0"
