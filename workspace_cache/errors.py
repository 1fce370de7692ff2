"""Exception taxonomy for the workspace cache and resolver.

Only ValidationError and NotFoundError are meant to reach an end user.
CacheCorruptedError is recovered by the store, and remote errors are
absorbed by the sync orchestrator or the resolver where a fallback exists.
"""

from typing import Any, Optional


class WorkspaceCacheError(Exception):
    """Base exception for workspace cache operations."""


class ValidationError(WorkspaceCacheError):
    """Raised when an identifier is malformed. Never retried."""

    def __init__(self, value: Any, message: str = ""):
        self.value = value
        super().__init__(message or f"Invalid identifier: {value!r}")


class NotFoundError(WorkspaceCacheError):
    """Raised when every resolution stage was exhausted without a match.

    Attributes:
        query: The input as supplied by the caller
        kind: Object kind that was requested ("database" or "page")
        stages: Ordered (stage, outcome) pairs describing what was attempted
    """

    def __init__(self, query: str, kind: str, stages: list[tuple[str, str]]):
        self.query = query
        self.kind = kind
        self.stages = list(stages)
        attempted = ", ".join(stage for stage, _ in self.stages)
        super().__init__(f"No {kind} matching {query!r} (attempted: {attempted})")

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query,
            "kind": self.kind,
            "stages": [{"stage": stage, "outcome": outcome} for stage, outcome in self.stages],
        }


class CacheCorruptedError(WorkspaceCacheError):
    """Raised internally when the cache file cannot be parsed or has an unknown version."""

    def __init__(self, path: Any, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cache file {path} is corrupted: {reason}")


class RemoteError(WorkspaceCacheError):
    """Base exception for failures reported by the remote directory service."""


class RemoteUnavailableError(RemoteError):
    """Transient failure: network error, timeout or 5xx. Safe to retry."""

    def __init__(self, message: str = "", status: Optional[int] = None):
        self.status = status
        super().__init__(message or "Remote service unavailable")


class RateLimitedError(RemoteUnavailableError):
    """The remote service asked us to slow down (HTTP 429)."""

    def __init__(self, retry_after: Optional[float] = None, message: str = ""):
        self.retry_after = retry_after
        super().__init__(message or "Rate limited by remote service", status=429)


class RemoteRequestError(RemoteError):
    """Non-transient failure such as not-found or permission denied."""

    def __init__(self, status: int, code: str = "", message: str = ""):
        self.status = status
        self.code = code
        super().__init__(message or f"Remote request failed with HTTP {status} {code}".rstrip())

    @property
    def is_not_found(self) -> bool:
        return self.status == 404 or self.code == "object_not_found"
