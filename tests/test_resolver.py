"""Tests for the hybrid resolver cascade."""

from datetime import timedelta

import pytest

from workspace_cache.directory import RemoteSummary
from workspace_cache.errors import NotFoundError, RemoteUnavailableError, ValidationError
from workspace_cache.models import WorkspaceCache
from workspace_cache.resolver import ResolutionStage, ResolveOptions, Resolver
from workspace_cache.sync import SyncOrchestrator

from tests.conftest import NOTES_ID, NOW, PROJECTS_ID, TASKS_ID, FakeDirectory, make_entry, make_id

NO_SYNC = ResolveOptions(auto_sync=False, remote_search=False)


async def seed_fresh(store, *entries):
    await store.save(WorkspaceCache(last_sync=NOW, entries=list(entries)))


@pytest.fixture
async def fresh_workspace(store):
    await seed_fresh(
        store,
        make_entry(TASKS_ID, "Tasks Database"),
        make_entry(NOTES_ID, "Meeting Notes"),
        make_entry(PROJECTS_ID, "Projects Tracker"),
    )


class TestParserStage:
    async def test_url_resolves_without_io(self, resolver, directory, config):
        """A URL short-circuits: no cache read, no sync, no remote call."""
        result = await resolver.resolve("https://host/Title-1fb79d4c71bb8032b722c82305b63a00")

        assert result == TASKS_ID
        assert directory.list_calls == 0
        assert directory.search_calls == []
        assert not config.cache_path.exists()

    async def test_dashed_id(self, resolver):
        resolution = await resolver.resolve_detailed("1FB79D4C-71BB-8032-B722-C82305B63A00")
        assert resolution.id == TASKS_ID
        assert resolution.stage == ResolutionStage.PARSER

    async def test_malformed_id_fails_fast(self, resolver, directory):
        with pytest.raises(ValidationError):
            await resolver.resolve("1fb79d4c71bb8032b722c82305b63a")
        assert directory.list_calls == 0

    async def test_empty_input(self, resolver):
        with pytest.raises(ValidationError):
            await resolver.resolve("   ")


class TestCacheStages:
    async def test_exact_title(self, resolver, directory, fresh_workspace):
        resolution = await resolver.resolve_detailed("  TASKS DATABASE ")

        assert resolution.id == TASKS_ID
        assert resolution.stage == ResolutionStage.CACHE_EXACT
        assert resolution.score == 1.0
        assert resolution.stale is False
        assert directory.list_calls == 0

    @pytest.mark.parametrize("alias", ["tasks", "task", "td", "tasks db"])
    async def test_alias(self, resolver, fresh_workspace, alias):
        resolution = await resolver.resolve_detailed(alias)
        assert resolution.id == TASKS_ID
        assert resolution.stage == ResolutionStage.CACHE_ALIAS

    async def test_fuzzy(self, resolver, fresh_workspace):
        resolution = await resolver.resolve_detailed("meting notes")

        assert resolution.id == NOTES_ID
        assert resolution.stage == ResolutionStage.CACHE_FUZZY
        assert 0.7 <= resolution.score < 1.0

    async def test_exact_beats_alias_of_another_entry(self, resolver, store):
        await seed_fresh(store, make_entry(make_id(1), "Tasks Database"), make_entry(make_id(2), "Tasks"))

        resolution = await resolver.resolve_detailed("tasks")

        assert resolution.id == make_id(2)
        assert resolution.stage == ResolutionStage.CACHE_EXACT

    async def test_fuzzy_threshold_override(self, resolver, fresh_workspace):
        with pytest.raises(NotFoundError):
            strict = ResolveOptions(fuzzy_threshold=0.99, auto_sync=False, remote_search=False)
            await resolver.resolve("meting notes", options=strict)

    async def test_resolution_is_idempotent(self, resolver, directory, fresh_workspace):
        first = await resolver.resolve("projects")
        second = await resolver.resolve("projects")

        assert first == second == PROJECTS_ID
        assert directory.list_calls == 0

    async def test_tie_goes_to_smallest_id(self, resolver, store):
        await seed_fresh(store, make_entry(make_id(5), "Roadmap"), make_entry(make_id(3), "Roadmap"))

        resolution = await resolver.resolve_detailed("roadmap")

        assert resolution.id == make_id(3)
        assert resolution.alternatives == [make_id(5)]

    async def test_archived_entries_are_skipped_unless_requested(self, resolver, store):
        await seed_fresh(store, make_entry(TASKS_ID, "Old Tasks", archived=True))

        with pytest.raises(NotFoundError):
            await resolver.resolve("old tasks", options=NO_SYNC)

        included = ResolveOptions(auto_sync=False, remote_search=False, include_archived=True)
        assert await resolver.resolve("old tasks", options=included) == TASKS_ID

    async def test_title_mentioning_host_is_matched_as_a_name(self, resolver, store):
        await seed_fresh(store, make_entry(make_id(4), "notion.so tips"))

        resolution = await resolver.resolve_detailed("notion.so tips", options=NO_SYNC)

        assert resolution.id == make_id(4)
        assert resolution.stage == ResolutionStage.CACHE_EXACT

    async def test_kind_filter(self, resolver, store):
        await seed_fresh(store, make_entry(NOTES_ID, "Meeting Notes", kind="page"))

        with pytest.raises(NotFoundError):
            await resolver.resolve("meeting notes", kind="database", options=NO_SYNC)
        assert await resolver.resolve("meeting notes", kind="page", options=NO_SYNC) == NOTES_ID


class TestAutoSync:
    async def test_never_synced_cache_is_refreshed_first(self, resolver, directory):
        resolution = await resolver.resolve_detailed("Tasks Database")

        assert resolution.id == TASKS_ID
        assert resolution.stage == ResolutionStage.CACHE_EXACT
        assert resolution.stale is False
        assert directory.list_calls == 2

    async def test_miss_triggers_exactly_one_sync(self, resolver, directory, store):
        await seed_fresh(store, make_entry(make_id(9), "Something Else"))

        assert await resolver.resolve("meeting notes") == NOTES_ID
        assert directory.list_calls == 2

    async def test_second_miss_does_not_sync_again(self, resolver, directory, fresh_workspace):
        with pytest.raises(NotFoundError) as excinfo:
            await resolver.resolve("quarterly budget")

        stages = [stage for stage, _ in excinfo.value.stages]
        assert stages.count("auto_sync") == 1
        assert directory.list_calls == 2
        assert directory.search_calls == [("quarterly budget", "database")]

    async def test_stale_cache_is_refreshed_before_matching(self, resolver, store):
        await store.save(
            WorkspaceCache(last_sync=NOW - timedelta(days=2), entries=[make_entry(make_id(7), "Tasks Database")])
        )

        assert await resolver.resolve("tasks database") == TASKS_ID

    async def test_failed_refresh_falls_back_to_stale_cache(self, store, config, clock, workspace_details, lock):
        await store.save(
            WorkspaceCache(last_sync=NOW - timedelta(days=2), entries=[make_entry(make_id(7), "Tasks Database")])
        )
        directory = FakeDirectory(workspace_details, fail_listing_on_page=0)
        orchestrator = SyncOrchestrator(directory, store, lock, config, clock=clock)
        resolver = Resolver(store, config, orchestrator=orchestrator, directory=directory, clock=clock)

        resolution = await resolver.resolve_detailed("tasks database")

        assert resolution.id == make_id(7)
        assert resolution.stale is True
        assert directory.list_calls == 1

    async def test_recent_attempt_suppresses_stale_refresh(self, resolver, directory, store):
        await store.save(
            WorkspaceCache(
                last_sync=NOW - timedelta(days=2),
                last_attempt=NOW - timedelta(minutes=1),
                entries=[make_entry(make_id(7), "Tasks Database")],
            )
        )

        resolution = await resolver.resolve_detailed("tasks database")

        assert resolution.id == make_id(7)
        assert resolution.stale is True
        assert directory.list_calls == 0

    async def test_stale_cache_is_refreshed_once_retry_window_passes(self, resolver, directory, store):
        await store.save(
            WorkspaceCache(
                last_sync=NOW - timedelta(days=2),
                last_attempt=NOW - timedelta(minutes=10),
                entries=[make_entry(make_id(7), "Tasks Database")],
            )
        )

        assert await resolver.resolve("tasks database") == TASKS_ID
        assert directory.list_calls == 2

    async def test_persistent_item_failure_does_not_resync_every_call(
        self, store, config, clock, workspace_details, lock
    ):
        """One unreadable item leaves the sync partial; repeated resolves reuse that attempt."""
        directory = FakeDirectory(workspace_details, failing_ids={NOTES_ID})
        orchestrator = SyncOrchestrator(directory, store, lock, config, clock=clock)
        resolver = Resolver(store, config, orchestrator=orchestrator, directory=directory, clock=clock)

        resolutions = [await resolver.resolve_detailed("Tasks Database") for _ in range(5)]

        assert [resolution.id for resolution in resolutions] == [TASKS_ID] * 5
        assert all(resolution.stale for resolution in resolutions)
        assert directory.list_calls == 2
        assert (await store.load()).last_sync is None

    async def test_auto_sync_disabled(self, resolver, directory):
        with pytest.raises(NotFoundError):
            await resolver.resolve("tasks database", options=NO_SYNC)
        assert directory.list_calls == 0


class TestRemoteSearch:
    async def test_first_result_is_used(self, resolver, directory, fresh_workspace):
        directory.search_results = [
            RemoteSummary(id="4e5f6a7b-8c9d-0e1f-2a3b-4c5d6e7f8a9b", title="Roadmap"),
            RemoteSummary(id=make_id(8), title="Roadmap Archive"),
        ]

        resolution = await resolver.resolve_detailed("roadmap", options=ResolveOptions(auto_sync=False))

        assert resolution.id == "4e5f6a7b8c9d0e1f2a3b4c5d6e7f8a9b"
        assert resolution.stage == ResolutionStage.REMOTE_SEARCH
        assert resolution.title == "Roadmap"

    async def test_search_failure_is_reported_as_not_found(self, resolver, directory, fresh_workspace):
        directory.search_error = RemoteUnavailableError("search down", status=503)

        with pytest.raises(NotFoundError) as excinfo:
            await resolver.resolve("roadmap", options=ResolveOptions(auto_sync=False))

        assert excinfo.value.stages[-1][0] == "remote_search"
        assert "failed" in excinfo.value.stages[-1][1]


class TestNotFound:
    async def test_stages_are_listed_in_order(self, resolver, fresh_workspace):
        with pytest.raises(NotFoundError) as excinfo:
            await resolver.resolve("nothing like it", options=ResolveOptions(auto_sync=False))

        error = excinfo.value
        assert error.query == "nothing like it"
        assert error.kind == "database"
        assert [stage["stage"] for stage in error.to_dict()["stages"]] == [
            "parser",
            "cache_exact",
            "cache_alias",
            "cache_fuzzy",
            "remote_search",
        ]

    async def test_corrupted_cache_without_remote(self, store, config, clock):
        """A damaged cache is backed up and reset; resolution reports not-found, not a crash."""
        store.path.parent.mkdir(parents=True)
        store.path.write_text("{ definitely not json", encoding="utf-8")
        resolver = Resolver(store, config.model_copy(update={"auto_sync": False}), clock=clock)

        with pytest.raises(NotFoundError):
            await resolver.resolve("tasks")

        assert list(store.path.parent.glob("*.corrupt-*"))
        assert (await store.load()) == WorkspaceCache.empty()
