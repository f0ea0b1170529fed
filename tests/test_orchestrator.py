"""Tests for the step-wise sync orchestrator."""

from unittest.mock import MagicMock

import pytest
import redis

from searchsync.common.config import SyncConfig
from searchsync.common.events import EventPublisher
from searchsync.common.tenancy import StaticTenantDirectory, Tenant
from searchsync.indexables.registry import IndexableRegistry
from searchsync.search_backend.base import SearchBackendRequestError
from searchsync.sync import orchestrator as orchestrator_module
from searchsync.sync.checkpoint import (
    BULK_SETTING_KEY,
    FEATURE_AUTO_ACTIVATED_SYNC_KEY,
    INDEX_META_KEY,
    LAST_SYNC_KEY,
    NEED_UPGRADE_SYNC_KEY,
    MemoryCheckpointStore,
)
from searchsync.sync.errors import NoActiveRunError, NoWorkError
from searchsync.sync.hooks import SyncHooks
from searchsync.sync.orchestrator import SyncArgs, SyncOrchestrator, build_orchestrator
from searchsync.sync.progress import event_publisher_sink
from searchsync.sync.state import RunState

from .fakes import FakeIndexable, RecordingSink, make_objects


class RecordingTenantDirectory(StaticTenantDirectory):
    """Tenant directory that records activations and restores."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.activations = []
        self.restores = 0

    def activate(self, tenant_id):
        super().activate(tenant_id)
        self.activations.append(tenant_id)

    def restore(self):
        super().restore()
        self.restores += 1


@pytest.fixture
def tenants():
    return RecordingTenantDirectory(
        [
            Tenant(id=1, base_url="https://one.example.com"),
            Tenant(id=2, base_url="https://two.example.com"),
            Tenant(id=3, base_url="https://archived.example.com", is_indexable=False),
        ],
        multi_tenant=True,
    )


@pytest.fixture
def network(tenants, store):
    """Multi-tenant orchestrator: per-tenant ``post`` and ``page``, global ``term``."""
    post = FakeIndexable("post", make_objects(3), tenants=tenants)
    term = FakeIndexable("term", make_objects(1), tenants=tenants, global_=True, singular="Term", plural="Terms")
    page = FakeIndexable("page", make_objects(2), tenants=tenants, singular="Page", plural="Pages")

    orchestrator = SyncOrchestrator(
        registry=IndexableRegistry([post, term, page]),
        store=store,
        tenants=tenants,
        per_page=2,
    )
    return orchestrator, {"post": post, "term": term, "page": page}


def test_end_to_end_single_tenant(orchestrator, posts, store, sink):
    """A full run replaces the mapping, pages through objects, and completes."""
    orchestrator.full_index(SyncArgs(put_mapping=True, output=sink))

    assert sink.messages == [
        "Indexing posts on site 1...",
        "Mapping sent",
        "Processed 2/3...",
        "Processed 3/3...",
        "Sync complete",
    ]
    assert sink.errors == []

    assert [call[0] for call in posts.calls] == [
        "delete_index",
        "put_mapping",
        "query_content",
        "bulk_index",
        "query_content",
        "bulk_index",
        "query_content",
    ]
    assert [call[2] for call in posts.calls_named("bulk_index")] == [[1, 2], [3]]

    assert orchestrator.state is None
    assert store.get(INDEX_META_KEY) is None
    assert isinstance(store.get(LAST_SYNC_KEY), int)


def test_step_drives_run_one_tick_at_a_time(orchestrator, store, args):
    """Each ``step`` does one page; the last one finalizes the run."""
    assert orchestrator.step(args) is False
    assert store.get(INDEX_META_KEY)["offset"] == 2

    assert orchestrator.step(args) is False
    assert store.get(INDEX_META_KEY)["offset"] == 3

    assert orchestrator.step(args) is True
    assert store.get(INDEX_META_KEY) is None
    assert args.output.messages[-1] == "Sync complete"


def test_empty_registry_completes_immediately(store, sink):
    """A run with nothing to index completes in its first step."""
    orchestrator = SyncOrchestrator(registry=IndexableRegistry(), store=store)

    assert orchestrator.step(SyncArgs(output=sink)) is True
    assert sink.messages == ["Sync complete"]


class TestQueue:
    """Tests for building the run queue."""

    def test_multi_tenant_queue_order(self, network, args):
        """Per-tenant items come tenant by tenant, then global items."""
        orchestrator, _ = network
        state = orchestrator.start(args)

        assert [(item.indexable, item.tenant_id) for item in state.queue] == [
            ("post", 1),
            ("page", 1),
            ("post", 2),
            ("page", 2),
            ("term", None),
        ]
        assert state.alias_backlog == ["post", "page"]

    def test_non_indexable_tenants_are_skipped(self, network, args):
        orchestrator, _ = network
        state = orchestrator.start(args)

        assert 3 not in [item.tenant_id for item in state.queue]

    def test_tenant_fields_set_together(self, network, args):
        """Per-tenant items carry id and url; global items carry neither."""
        orchestrator, _ = network
        state = orchestrator.start(args)

        for item in state.queue:
            if item.indexable == "term":
                assert item.tenant_id is None and item.tenant_url is None
            else:
                assert item.tenant_url == f"https://{'one' if item.tenant_id == 1 else 'two'}.example.com"

    def test_single_tenant_queue_has_no_aliases(self, orchestrator, args):
        state = orchestrator.start(args)

        assert [(item.indexable, item.tenant_id, item.tenant_url) for item in state.queue] == [
            ("post", 1, "https://example.com"),
        ]
        assert state.alias_backlog == []

    def test_put_mapping_flag_is_copied_to_every_item(self, network, sink):
        orchestrator, _ = network
        state = orchestrator.start(SyncArgs(put_mapping=True, output=sink))

        assert all(item.put_mapping for item in state.queue)

    def test_new_run_clears_upgrade_markers(self, orchestrator, store, args):
        store.set(NEED_UPGRADE_SYNC_KEY, True)
        store.set(FEATURE_AUTO_ACTIVATED_SYNC_KEY, True)

        orchestrator.start(args)

        assert store.get(NEED_UPGRADE_SYNC_KEY) is None
        assert store.get(FEATURE_AUTO_ACTIVATED_SYNC_KEY) is None
        assert store.get(INDEX_META_KEY)["queue"][0]["indexable"] == "post"


class TestPagination:
    """Tests for paginated object indexing."""

    def test_offsets_never_decrease_within_an_item(self, orchestrator, args):
        orchestrator.start(args)
        offsets = []
        while orchestrator.has_work():
            orchestrator.process_next_step()
            offsets.append(orchestrator.state.offset)

        # The closing step resets the cursor for the next item.
        assert offsets == [2, 3, 0]

    def test_vetoed_objects_still_advance_offset(self, single_tenant, store, sink):
        """Skipped objects are not re-fetched and a fully vetoed page sends no bulk request."""
        posts = FakeIndexable("post", make_objects(3), tenants=single_tenant)

        class SkipOdd(SyncHooks):
            def kill_object_sync(self, kill, obj, indexable):
                return obj["id"] % 2 == 1

        orchestrator = SyncOrchestrator(
            registry=IndexableRegistry([posts]),
            store=store,
            tenants=single_tenant,
            hooks=SkipOdd(),
            per_page=2,
        )
        orchestrator.full_index(SyncArgs(output=sink))

        assert [call[2] for call in posts.calls_named("query_content")] == [(0, 2), (2, 2), (3, 2)]
        assert [call[2] for call in posts.calls_named("bulk_index")] == [[2]]
        assert "Processed 3/3..." in sink.messages

    def test_bulk_setting_overrides_page_size(self, orchestrator, posts, store, args):
        store.set(BULK_SETTING_KEY, 1)

        orchestrator.full_index(args)

        assert [call[2] for call in posts.calls_named("query_content")] == [(0, 1), (1, 1), (2, 1), (3, 1)]

    def test_empty_page_before_total_closes_item(self, orchestrator, posts, args):
        """A source that under-delivers cannot stall the run, and the early stop is reported."""
        posts.query_content = MagicMock(return_value=MagicMock(total_objects=5, objects=[]))

        assert orchestrator.step(args) is True
        assert posts.calls_named("bulk_index") == []
        assert args.output.errors == ["Stopped indexing posts at 0/5: no objects returned"]

    @pytest.mark.parametrize("bulk_setting", [0, -5, "many"])
    def test_invalid_bulk_setting_falls_back_to_default(self, orchestrator, posts, store, args, bulk_setting):
        store.set(BULK_SETTING_KEY, bulk_setting)

        orchestrator.full_index(args)

        assert [call[2] for call in posts.calls_named("query_content")] == [(0, 2), (2, 2), (3, 2)]
        assert [call[2] for call in posts.calls_named("bulk_index")] == [[1, 2], [3]]
        assert args.output.errors == []

    def test_zero_page_size_from_hook_falls_back_to_default(self, single_tenant, store, sink):
        posts = FakeIndexable("post", make_objects(3), tenants=single_tenant)

        class NoPages(SyncHooks):
            def per_page(self, per_page):
                return 0

        orchestrator = SyncOrchestrator(
            registry=IndexableRegistry([posts]),
            store=store,
            tenants=single_tenant,
            hooks=NoPages(),
            per_page=2,
        )
        orchestrator.full_index(SyncArgs(output=sink))

        assert [call[2] for call in posts.calls_named("bulk_index")] == [[1, 2], [3]]
        assert "Processed 3/3..." in sink.messages

    def test_run_page_size_overrides_bulk_setting(self, orchestrator, posts, store, sink):
        store.set(BULK_SETTING_KEY, 1)

        orchestrator.full_index(SyncArgs(per_page=3, output=sink))

        assert [call[2] for call in posts.calls_named("query_content")] == [(0, 3), (3, 3)]

    def test_page_size_below_one_is_rejected(self, posts, store):
        with pytest.raises(ValueError):
            SyncOrchestrator(registry=IndexableRegistry([posts]), store=store, per_page=0)

    def test_duplicate_ids_in_a_page_are_indexed_once(self, orchestrator, posts, args):
        posts.objects = [{"id": 1}, {"id": 1}, {"id": 2}]
        orchestrator.per_page = 3

        orchestrator.full_index(args)

        assert posts.calls_named("bulk_index")[0][2] == [1, 2]


class TestFailures:
    """Backend failures are reported and never abort the run."""

    def test_hard_bulk_error_is_reported_and_run_continues(self, orchestrator, posts, sink):
        posts.bulk_error = SearchBackendRequestError("rejected", messages=["shard failure", "queue full"])

        orchestrator.full_index(SyncArgs(output=sink))

        assert sink.errors == ["shard failure\nqueue full", "shard failure\nqueue full"]
        assert sink.messages[-1] == "Sync complete"
        assert "Processed 3/3..." in sink.messages

    def test_partial_bulk_failure_is_formatted(self, orchestrator, posts, sink):
        posts.failed_ids = [2]

        orchestrator.full_index(SyncArgs(output=sink))

        assert sink.errors == [
            "The following failed to index:\n\n"
            "- 2 (Post): \n"
            "[mapper_parsing_exception] failed to parse field [date]\n"
        ]
        assert sink.messages[-1] == "Sync complete"

    def test_unreachable_event_bus_does_not_stop_run(self, orchestrator, posts, sink, monkeypatch):
        monkeypatch.setattr("searchsync.common.events.time.sleep", lambda delay: None)
        client = MagicMock()
        client.publish.side_effect = redis.ConnectionError("connection refused")
        orchestrator.reporter.sinks.append(event_publisher_sink(EventPublisher("redis://localhost:6379", client=client)))

        orchestrator.full_index(SyncArgs(output=sink))

        assert [call[2] for call in posts.calls_named("bulk_index")] == [[1, 2], [3]]
        assert sink.messages == ["Indexing posts on site 1...", "Processed 2/3...", "Processed 3/3...", "Sync complete"]
        assert client.publish.call_count > 0

    def test_mapping_failure_does_not_stop_indexing(self, orchestrator, posts, sink):
        posts.mapping_result = False

        orchestrator.full_index(SyncArgs(put_mapping=True, output=sink))

        assert sink.errors == ["Mapping failed"]
        assert len(posts.calls_named("bulk_index")) == 2

    def test_mapping_backend_exception_is_reported(self, orchestrator, posts, sink):
        posts.put_mapping = MagicMock(side_effect=SearchBackendRequestError("index exists"))

        orchestrator.full_index(SyncArgs(put_mapping=True, output=sink))

        assert "Mapping failed" in sink.errors
        assert sink.messages[-1] == "Sync complete"

    def test_tenant_restored_when_step_raises(self, network, tenants, args):
        orchestrator, indexables = network
        orchestrator.start(args)
        orchestrator.state.queue = orchestrator.state.queue[2:]
        indexables["post"].query_content = MagicMock(side_effect=RuntimeError("database unavailable"))

        with pytest.raises(RuntimeError):
            orchestrator.process_next_step()

        assert tenants.activations == [2]
        assert tenants.restores == 1
        assert tenants.current_tenant().id == 1


class TestMapping:
    """Tests for mapping replacement."""

    def test_mapping_runs_once_per_item(self, orchestrator, posts, args):
        orchestrator.full_index(SyncArgs(put_mapping=True, output=args.output))

        assert len(posts.calls_named("delete_index")) == 1
        assert len(posts.calls_named("put_mapping")) == 1

    def test_skip_index_reset_hook(self, single_tenant, store, sink):
        posts = FakeIndexable("post", make_objects(3), tenants=single_tenant)
        on_put_mapping = MagicMock()

        class KeepIndex(SyncHooks):
            def skip_index_reset(self, skip, state, args):
                return True

            def on_put_mapping(self, state, indexable):
                on_put_mapping(indexable)

        orchestrator = SyncOrchestrator(
            registry=IndexableRegistry([posts]),
            store=store,
            tenants=single_tenant,
            hooks=KeepIndex(),
            per_page=2,
        )
        orchestrator.full_index(SyncArgs(put_mapping=True, output=sink))

        assert posts.calls_named("delete_index") == []
        assert posts.calls_named("put_mapping") == []
        assert "Mapping sent" not in sink.messages
        on_put_mapping.assert_not_called()


class TestResume:
    """Tests for resuming from a checkpoint."""

    def test_resume_in_another_process(self, orchestrator, store, single_tenant, sink):
        """A fresh orchestrator picks up at the checkpointed offset without remapping."""
        orchestrator.step(SyncArgs(put_mapping=True, output=sink))

        copied = MemoryCheckpointStore({INDEX_META_KEY: store.get(INDEX_META_KEY)})
        resumed_posts = FakeIndexable("post", make_objects(3), tenants=single_tenant)
        resumed = SyncOrchestrator(
            registry=IndexableRegistry([resumed_posts]),
            store=copied,
            tenants=single_tenant,
            per_page=2,
        )
        resumed.setup()
        assert resumed.state.offset == 2

        resumed_sink = RecordingSink()
        resumed.full_index(SyncArgs(put_mapping=True, output=resumed_sink))

        assert resumed_posts.calls_named("delete_index") == []
        assert [call[2] for call in resumed_posts.calls_named("query_content")] == [(2, 2), (3, 2)]
        assert resumed_posts.calls_named("bulk_index")[0][2] == [3]
        assert resumed_sink.messages == ["Processed 3/3...", "Sync complete"]

    def test_resume_ignores_new_put_mapping_flag(self, orchestrator, store, args):
        """Arguments of a resumed run do not rebuild its queue."""
        orchestrator.step(args)

        state = orchestrator.start(SyncArgs(put_mapping=True, output=args.output))

        assert state.offset == 2
        assert state.current_item.put_mapping is False

    @pytest.mark.parametrize("checkpoint", [
        {"schema_version": 99, "queue": []},
        {"schema_version": 1, "offset": -4},
        "not a checkpoint",
    ])
    def test_unusable_checkpoint_starts_new_run(self, orchestrator, store, args, checkpoint):
        store.set(INDEX_META_KEY, checkpoint)

        state = orchestrator.start(args)

        assert state.offset == 0
        assert [item.indexable for item in state.queue] == ["post"]


class TestAliases:
    """Tests for network alias creation."""

    def test_alias_spans_every_tenant(self, network, tenants, sink):
        orchestrator, indexables = network

        orchestrator.full_index(SyncArgs(output=sink))

        alias_calls = indexables["post"].calls_named("create_alias")
        assert len(alias_calls) == 1
        assert alias_calls[0][2] == ["post-1", "post-2", "post-3"]
        assert indexables["term"].calls_named("create_alias") == []
        assert tenants.current_tenant().id == 1

        assert "Network alias created for posts ..." in sink.messages
        assert "Network alias created for pages ..." in sink.messages
        assert sink.messages[-1] == "Sync complete"

    def test_alias_failure_is_reported(self, network, sink):
        orchestrator, indexables = network
        indexables["page"].alias_result = False

        orchestrator.full_index(SyncArgs(output=sink))

        assert sink.errors == ["Network alias creation failed for pages ..."]
        assert sink.messages[-1] == "Sync complete"

    def test_multi_tenant_progress_messages(self, network, sink):
        orchestrator, _ = network

        orchestrator.full_index(SyncArgs(output=sink))

        starts = [message for message in sink.messages if message.startswith("Indexing")]
        assert starts == [
            "Indexing posts on site 1...",
            "Indexing pages on site 1...",
            "Indexing posts on site 2...",
            "Indexing pages on site 2...",
            "Indexing terms (globally)...",
        ]

    def test_items_index_inside_their_tenant(self, network):
        orchestrator, indexables = network

        orchestrator.full_index()

        bulk_tenants = [call[1] for call in indexables["post"].calls_named("bulk_index")]
        assert bulk_tenants == [1, 1, 2, 2]
        assert [call[1] for call in indexables["term"].calls_named("bulk_index")] == [None]


class TestRunControl:
    """Tests for misuse of the step API, cancel, and status."""

    def test_step_without_run_raises(self, orchestrator):
        with pytest.raises(NoActiveRunError):
            orchestrator.process_next_step()

    def test_step_with_empty_queue_raises(self, orchestrator):
        orchestrator.state = RunState()

        with pytest.raises(NoWorkError):
            orchestrator.process_next_step()

    def test_cancel_discards_checkpoint(self, orchestrator, store, args):
        orchestrator.step(args)

        assert orchestrator.cancel(args) is True
        assert store.get(INDEX_META_KEY) is None
        assert orchestrator.state is None
        assert args.output.messages[-1] == "Sync cancelled"

        assert orchestrator.cancel(args) is False

    def test_status(self, orchestrator, args):
        assert orchestrator.status() is None

        orchestrator.step(args)
        status = orchestrator.status()

        assert status["offset"] == 2
        assert status["found_items"] == 3
        assert status["current_item"]["indexable"] == "post"

    def test_every_progress_event_sees_its_checkpoint(self, orchestrator, store):
        """Sinks run after the state they describe is durable."""
        observed = []

        def check(event):
            observed.append(store.get(INDEX_META_KEY) == event.index_meta)

        orchestrator.full_index(SyncArgs(output=check))

        assert observed and all(observed)


def test_multi_tenant_setting_only_cross_checks_directory(posts, store, monkeypatch):
    """The tenant directory decides tenancy; the setting just flags a mismatch."""
    monkeypatch.setenv("SYNC_MULTI_TENANT", "true")
    monkeypatch.setattr("searchsync.sync.orchestrator.logger", MagicMock())

    orchestrator = build_orchestrator(SyncConfig(), IndexableRegistry([posts]), store=store)

    assert orchestrator.tenants.is_multi_tenant is False
    warning = orchestrator_module.logger.warning
    warning.assert_called_once_with("sync_multi_tenant is set but the tenant directory is single-tenant")
