"""Interface to the remote object directory consumed by sync and resolution.

Implementations raise:
    - RateLimitedError / RemoteUnavailableError for transient failures
    - RemoteRequestError for not-found and permission failures

Retry and backoff are the implementation's concern (see retry.RetryPolicy);
callers only see the error or result the policy finally surfaces.
"""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, Field

from .models import ObjectKind


class RemoteSummary(BaseModel):
    """One object as returned by a listing or search call."""

    model_config = {"frozen": True}

    id: str
    kind: ObjectKind = "database"
    title: str = "Untitled"
    url: Optional[str] = None
    last_edited_time: Optional[str] = None
    archived: bool = False


class RemoteDetail(RemoteSummary):
    """Extended description of one object, including its property schema."""

    property_summary: dict[str, str] = Field(
        default_factory=dict,
        description="Property name -> property type",
    )


class DirectoryServiceInterface(ABC):
    """Abstract interface for the remote object directory.

    Example:
        ```python
        summaries, token = await directory.list_summaries(None)
        while token:
            more, token = await directory.list_summaries(token)
            summaries.extend(more)
        ```
    """

    @abstractmethod
    async def list_summaries(self, page_token: Optional[str]) -> tuple[list[RemoteSummary], Optional[str]]:
        """Fetch one page of object summaries.

        Args:
            page_token: Cursor from the previous page, or None for the first page

        Returns:
            (summaries, next_token); next_token is None on the last page
        """

    @abstractmethod
    async def get_detail(self, object_id: str, kind: ObjectKind = "database") -> RemoteDetail:
        """Fetch the extended description of one object."""

    @abstractmethod
    async def search(self, query: str, kind: ObjectKind) -> list[RemoteSummary]:
        """Free-text search restricted to one object kind, best match first."""
