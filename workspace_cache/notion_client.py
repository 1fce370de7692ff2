"""Notion API implementation of DirectoryServiceInterface.

Uses ``httpx.AsyncClient``. Every request goes through a RetryPolicy; HTTP
status codes are mapped onto the error taxonomy so that rate limiting and
transient failures stay distinguishable from not-found and permission errors.
"""

import os
from typing import Any, Optional

import httpx

from .directory import DirectoryServiceInterface, RemoteDetail, RemoteSummary
from .errors import RateLimitedError, RemoteRequestError, RemoteUnavailableError
from .identifiers import normalize_id
from .logging import setup_logging
from .models import ObjectKind
from .retry import RetryPolicy

logger = setup_logging()

NOTION_API_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2025-09-03"
TOKEN_ENV = "NOTION_TOKEN"
LIST_PAGE_SIZE = 100  # max allowed by the API
SEARCH_PAGE_SIZE = 10
TRANSIENT_STATUS_CODES = frozenset({408, 500, 502, 503, 504})

# Our object kinds -> the search API's object filter values
_SEARCH_OBJECT = {"database": "data_source", "page": "page"}
_KIND_FOR_OBJECT = {"data_source": "database", "database": "database", "page": "page"}


def _plain_text(rich_text: Any) -> str:
    if not isinstance(rich_text, list):
        return ""
    return "".join(part.get("plain_text", "") for part in rich_text if isinstance(part, dict))


def _title_of(obj: dict[str, Any]) -> str:
    title = _plain_text(obj.get("title"))
    if not title:
        for prop in (obj.get("properties") or {}).values():
            if isinstance(prop, dict) and prop.get("type") == "title":
                title = _plain_text(prop.get("title"))
                break
    return title.strip() or "Untitled"


def _property_summary(obj: dict[str, Any]) -> dict[str, str]:
    return {
        name: str(prop.get("type", "unknown"))
        for name, prop in (obj.get("properties") or {}).items()
        if isinstance(prop, dict)
    }


def _summary_fields(obj: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": normalize_id(obj["id"]),
        "kind": _KIND_FOR_OBJECT.get(obj.get("object", ""), "database"),
        "title": _title_of(obj),
        "url": obj.get("url"),
        "last_edited_time": obj.get("last_edited_time"),
        "archived": bool(obj.get("archived") or obj.get("in_trash")),
    }


def parse_summary(obj: dict[str, Any]) -> RemoteSummary:
    """Convert one raw API object into a RemoteSummary."""
    return RemoteSummary(**_summary_fields(obj))


def parse_detail(obj: dict[str, Any]) -> RemoteDetail:
    """Convert one raw API object into a RemoteDetail."""
    return RemoteDetail(**_summary_fields(obj), property_summary=_property_summary(obj))


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def raise_for_status(response: httpx.Response) -> None:
    """Map an error response onto the remote error taxonomy."""
    status = response.status_code
    if status < 400:
        return
    if status == 429:
        raise RateLimitedError(retry_after=_retry_after(response))
    if status in TRANSIENT_STATUS_CODES:
        raise RemoteUnavailableError(f"Remote service returned HTTP {status}", status=status)
    try:
        body = response.json()
    except ValueError:
        body = {}
    code = body.get("code", "") if isinstance(body, dict) else ""
    message = body.get("message", "") if isinstance(body, dict) else ""
    raise RemoteRequestError(status=status, code=code, message=message)


class NotionDirectoryService(DirectoryServiceInterface):
    """Directory service backed by the Notion REST API.

    Example:
        ```python
        async with NotionDirectoryService(token=os.environ["NOTION_TOKEN"]) as directory:
            summaries, cursor = await directory.list_summaries(None)
        ```
    """

    def __init__(
        self,
        token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
        base_url: str = NOTION_API_URL,
        timeout: float = 10.0,
    ):
        """Initialize the directory service.

        Args:
            token: Integration token; read from NOTION_TOKEN when omitted
            client: Pre-configured client (tests pass one with a mock transport)
            retry_policy: Backoff policy applied to every request
            base_url: API root
            timeout: Request timeout in seconds for the default client
        """
        self.token = token or os.getenv(TOKEN_ENV, "")
        self.retry_policy = retry_policy or RetryPolicy.from_env()
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.base_url = base_url.rstrip("/")

    async def __aenter__(self) -> "NotionDirectoryService":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Notion-Version": NOTION_VERSION,
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, context: str, json: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        url = f"{self.base_url}{path}"

        async def attempt() -> dict[str, Any]:
            try:
                response = await self.client.request(method, url, headers=self._headers(), json=json)
            except httpx.TransportError as exc:
                raise RemoteUnavailableError(f"{type(exc).__name__}: {exc}") from exc
            raise_for_status(response)
            return response.json()

        return await self.retry_policy.call(attempt, context=context)

    async def list_summaries(self, page_token: Optional[str]) -> tuple[list[RemoteSummary], Optional[str]]:
        body: dict[str, Any] = {
            "filter": {"property": "object", "value": _SEARCH_OBJECT["database"]},
            "page_size": LIST_PAGE_SIZE,
        }
        if page_token:
            body["start_cursor"] = page_token
        data = await self._request("POST", "/search", context="sync:list", json=body)
        summaries = [parse_summary(obj) for obj in data.get("results", [])]
        next_token = data.get("next_cursor") if data.get("has_more") else None
        return summaries, next_token

    async def get_detail(self, object_id: str, kind: ObjectKind = "database") -> RemoteDetail:
        path = f"/data_sources/{object_id}" if kind == "database" else f"/pages/{object_id}"
        data = await self._request("GET", path, context=f"sync:detail:{object_id}")
        return parse_detail(data)

    async def search(self, query: str, kind: ObjectKind) -> list[RemoteSummary]:
        body = {
            "query": query,
            "filter": {"property": "object", "value": _SEARCH_OBJECT[kind]},
            "page_size": SEARCH_PAGE_SIZE,
        }
        data = await self._request("POST", "/search", context="resolve:search", json=body)
        return [parse_summary(obj) for obj in data.get("results", [])]
