"""Test fixtures: an in-memory directory service and tmp_path-backed cache wiring.

FakeDirectory serves summaries in pages and details from a dict. Individual
IDs can fail transiently (failing_ids) or permanently (gone_ids), and the
listing can fail on a given page, so sync and resolver tests can exercise
partial-failure paths without HTTP.
"""

import asyncio
from datetime import datetime, timezone
from typing import Optional

import pytest

from workspace_cache.clock import FixedClock
from workspace_cache.config import ResolverConfig
from workspace_cache.directory import DirectoryServiceInterface, RemoteDetail, RemoteSummary
from workspace_cache.errors import RemoteError, RemoteRequestError, RemoteUnavailableError
from workspace_cache.lock import SyncLock
from workspace_cache.models import CacheEntry
from workspace_cache.resolver import Resolver
from workspace_cache.store import JsonFileCacheStore
from workspace_cache.sync import SyncOrchestrator

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

TASKS_ID = "1fb79d4c71bb8032b722c82305b63a00"
NOTES_ID = "2a0b1c2d3e4f5a6b7c8d9e0f1a2b3c4d"
PROJECTS_ID = "3c4d5e6f7a8b9c0d1e2f3a4b5c6d7e8f"


def make_id(n: int) -> str:
    """Deterministic 32-hex ID for test object number ``n``."""
    return f"{n:032x}"


def make_detail(object_id: str, title: str, kind: str = "database", archived: bool = False) -> RemoteDetail:
    return RemoteDetail(
        id=object_id,
        kind=kind,
        title=title,
        url=f"https://www.notion.so/{object_id}",
        last_edited_time="2026-02-28T10:00:00.000Z",
        archived=archived,
        property_summary={"Name": "title", "Status": "status"},
    )


def make_entry(object_id: str, title: str, kind: str = "database", archived: bool = False) -> CacheEntry:
    return CacheEntry(id=object_id, title=title, kind=kind, archived=archived)


class FakeDirectory(DirectoryServiceInterface):
    """In-memory DirectoryServiceInterface for tests."""

    def __init__(
        self,
        details: list[RemoteDetail],
        page_size: int = 2,
        failing_ids: Optional[set[str]] = None,
        gone_ids: Optional[set[str]] = None,
        fail_listing_on_page: Optional[int] = None,
        search_results: Optional[list[RemoteSummary]] = None,
        search_error: Optional[RemoteError] = None,
        delay: float = 0.0,
    ):
        self.details = {detail.id: detail for detail in details}
        self.order = [detail.id for detail in details]
        self.page_size = page_size
        self.failing_ids = failing_ids or set()
        self.gone_ids = gone_ids or set()
        self.fail_listing_on_page = fail_listing_on_page
        self.search_results = search_results or []
        self.search_error = search_error
        self.delay = delay
        self.list_calls = 0
        self.detail_calls: list[str] = []
        self.search_calls: list[tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def list_summaries(self, page_token):
        page = int(page_token or 0)
        self.list_calls += 1
        if self.fail_listing_on_page is not None and page == self.fail_listing_on_page:
            raise RemoteUnavailableError("listing unavailable", status=503)
        start = page * self.page_size
        ids = self.order[start : start + self.page_size]
        summaries = [RemoteSummary(**self.details[i].model_dump(exclude={"property_summary"})) for i in ids]
        next_token = str(page + 1) if start + self.page_size < len(self.order) else None
        return summaries, next_token

    async def get_detail(self, object_id, kind="database"):
        self.detail_calls.append(object_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if object_id in self.failing_ids:
                raise RemoteUnavailableError(f"retries exhausted for {object_id}", status=503)
            if object_id in self.gone_ids:
                raise RemoteRequestError(status=404, code="object_not_found", message=f"Could not find {object_id}")
            return self.details[object_id]
        finally:
            self.in_flight -= 1

    async def search(self, query, kind):
        self.search_calls.append((query, kind))
        if self.search_error is not None:
            raise self.search_error
        return [result for result in self.search_results if result.kind == kind]


@pytest.fixture
def clock():
    return FixedClock(now=NOW)


@pytest.fixture
def config(tmp_path):
    return ResolverConfig(cache_dir=tmp_path / "cache")


@pytest.fixture
def store(config, clock):
    return JsonFileCacheStore(config.cache_path, clock=clock)


@pytest.fixture
def lock(config, clock):
    return SyncLock(config.lock_path, stale_after_ms=config.lock_stale_ms, clock=clock)


@pytest.fixture
def workspace_details():
    return [
        make_detail(TASKS_ID, "Tasks Database"),
        make_detail(NOTES_ID, "Meeting Notes"),
        make_detail(PROJECTS_ID, "Projects Tracker"),
    ]


@pytest.fixture
def directory(workspace_details):
    return FakeDirectory(workspace_details)


@pytest.fixture
def orchestrator(directory, store, lock, config, clock):
    return SyncOrchestrator(directory, store, lock, config, clock=clock)


@pytest.fixture
def resolver(store, config, orchestrator, directory, clock):
    return Resolver(store, config, orchestrator=orchestrator, directory=directory, clock=clock)
