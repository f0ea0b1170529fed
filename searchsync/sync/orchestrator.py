"""Resumable full-sync orchestrator.

Drives a full reindex of every registered indexable, for every indexable
tenant, one step at a time. All progress lives in a ``RunState`` that is
checkpointed after every step, so the process may stop between any two steps
and a later ``step()`` (in this or another process) carries on exactly where
the previous one left off.

Execution model
- ``build_queue`` runs once per run: per-tenant items first, tenant by
  tenant, then global items
- ``process_next_step`` dequeues an item when none is current, optionally
  replaces its index mapping, then indexes one page of objects
- ``process_next_alias`` builds one network alias once every item is done
- ``full_index_complete`` discards the state

Backend failures are reported as error events and never stop the run.
"""

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, Optional

import structlog

from ..common.config import SyncConfig
from ..common.events import create_event_publisher
from ..common.logging import log_performance, sync_item_context
from ..common.metrics import MetricsCollector, get_metrics_collector
from ..common.tenancy import StaticTenantDirectory, TenantDirectory
from ..indexables.base import Indexable, QueryArgs, QueryResult
from ..indexables.registry import IndexableRegistry
from ..search_backend.base import SearchBackendError
from .checkpoint import (
    BULK_SETTING_KEY,
    FEATURE_AUTO_ACTIVATED_SYNC_KEY,
    INDEX_META_KEY,
    LAST_SYNC_KEY,
    NEED_UPGRADE_SYNC_KEY,
    CheckpointStore,
    create_checkpoint_store,
)
from .errors import CheckpointSchemaError, NoActiveRunError, NoWorkError
from .hooks import SyncHooks
from .progress import ProgressReporter, ProgressSink, event_publisher_sink, failed_bulk_items, format_index_errors
from .state import RunState, WorkItem

logger = structlog.get_logger("sync.orchestrator")

DEFAULT_PER_PAGE = 350


@dataclass
class SyncArgs:
    """Arguments of a sync run.

    ``per_page`` takes precedence over the stored ``bulk_setting`` and the
    configured page size. ``extra`` carries caller options the orchestrator
    does not interpret; hooks receive the whole object.
    """
    put_mapping: bool = False
    per_page: Optional[int] = None
    output: Optional[ProgressSink] = None
    extra: Dict[str, Any] = field(default_factory=dict)


class SyncOrchestrator:
    """Step-wise full sync over an indexable registry.

    One instance is meant to live for the whole process and be shared by
    every driver (HTTP handler, CLI, scheduled task).
    """

    def __init__(
        self,
        registry: IndexableRegistry,
        store: CheckpointStore,
        tenants: Optional[TenantDirectory] = None,
        hooks: Optional[SyncHooks] = None,
        per_page: int = DEFAULT_PER_PAGE,
        metrics: Optional[MetricsCollector] = None,
        sinks: Optional[Iterable[ProgressSink]] = None,
    ):
        if per_page < 1:
            raise ValueError(f"per_page must be at least 1, got {per_page}")

        self.registry = registry
        self.store = store
        self.tenants = tenants or StaticTenantDirectory.single()
        self.hooks = hooks or SyncHooks()
        self.per_page = per_page
        self.metrics = metrics
        self.reporter = ProgressReporter(store, sinks)

        self.state: Optional[RunState] = None
        self.args = SyncArgs()
        self.current_query: Optional[QueryResult] = None

    def setup(self) -> None:
        """Load any checkpointed run into memory."""
        self.state = self._load_state()

    # Run control

    def full_index(self, args: Optional[SyncArgs] = None) -> None:
        """Run (or resume) a full sync to completion."""
        self.start(args)

        while self.has_work():
            self.process_next_step()

        while self.has_alias_work():
            self.process_next_alias()

        self.full_index_complete()

    def start(self, args: Optional[SyncArgs] = None) -> RunState:
        """Resume the checkpointed run, or build a new one if none exists."""
        self.args = args or SyncArgs()
        self.state = self._load_state()

        if self.state is None:
            self.build_queue()
        else:
            logger.debug("Resuming sync from checkpoint", queue_length=len(self.state.queue), offset=self.state.offset)

        return self.state

    def step(self, args: Optional[SyncArgs] = None) -> bool:
        """Perform one unit of work and return whether the run is finished.

        A unit is one item step, or one alias once the queue is drained. The
        run is finalized in the same call as its last unit.
        """
        self.start(args)

        if self.has_work():
            self.process_next_step()
        elif self.has_alias_work():
            self.process_next_alias()

        if not self.has_work() and not self.has_alias_work():
            self.full_index_complete()
            return True

        return False

    def cancel(self, args: Optional[SyncArgs] = None) -> bool:
        """Abandon the current run. Returns whether a run was active."""
        if args is not None:
            self.args = args

        was_active = self.state is not None or self.store.get(INDEX_META_KEY) is not None
        self.state = None
        self.current_query = None

        if was_active:
            self.reporter.success(None, "Sync cancelled", self.args.output)
            if self.metrics:
                self.metrics.record_run("cancelled")
        return was_active

    def status(self) -> Optional[Dict[str, Any]]:
        """Return the checkpointed run state, or ``None`` when idle."""
        state = self._load_state()
        return state.to_checkpoint() if state is not None else None

    def _load_state(self) -> Optional[RunState]:
        raw = self.store.get(INDEX_META_KEY)
        if raw is None:
            return None

        try:
            return RunState.from_checkpoint(raw)
        except CheckpointSchemaError as e:
            logger.warning("Discarding unusable sync checkpoint", error=str(e))
            self.store.delete(INDEX_META_KEY)
            return None

    def _require_state(self) -> RunState:
        if self.state is None:
            raise NoActiveRunError("No sync run is loaded; call start() first")
        return self.state

    # Queue

    def build_queue(self) -> RunState:
        """Queue every indexable for a new run."""
        put_mapping = bool(self.args.put_mapping)
        state = RunState()

        global_indexables = self.registry.get_all(global_=True)
        tenant_indexables = self.registry.get_all(global_=False)

        if self.tenants.is_multi_tenant:
            for tenant in self.tenants.list_tenants():
                if not tenant.is_indexable:
                    continue

                for slug in tenant_indexables:
                    state.queue.append(WorkItem(
                        indexable=slug,
                        put_mapping=put_mapping,
                        tenant_id=tenant.id,
                        tenant_url=tenant.url,
                    ))

                    if slug not in state.alias_backlog:
                        state.alias_backlog.append(slug)
        else:
            tenant = self.tenants.current_tenant()
            for slug in tenant_indexables:
                state.queue.append(WorkItem(
                    indexable=slug,
                    put_mapping=put_mapping,
                    tenant_id=tenant.id,
                    tenant_url=tenant.url,
                ))

        for slug in global_indexables:
            state.queue.append(WorkItem(indexable=slug, put_mapping=put_mapping))

        self.hooks.on_start(state, self.args)
        self.state = self.hooks.filter_run_state(state, self.args)

        self.store.set(LAST_SYNC_KEY, int(time.time()))
        self.store.delete(NEED_UPGRADE_SYNC_KEY)
        self.store.delete(FEATURE_AUTO_ACTIVATED_SYNC_KEY)
        self.reporter.checkpoint(self.state)

        logger.info(
            "Sync queue built",
            queue_length=len(self.state.queue),
            alias_backlog=self.state.alias_backlog,
            put_mapping=put_mapping
        )
        return self.state

    def has_work(self) -> bool:
        """Whether an item is in progress or still queued."""
        return self.state is not None and self.state.has_items()

    def has_alias_work(self) -> bool:
        """Whether network aliases are still waiting to be built."""
        return self.state is not None and len(self.state.alias_backlog) > 0

    # Items

    def process_next_step(self) -> None:
        """Advance the current item by one page, dequeuing one if needed."""
        state = self._require_state()
        started = time.time()

        if state.current_item is None:
            if not state.queue:
                raise NoWorkError("The sync queue is empty")

            state.current_item = state.queue.pop(0)
            indexable = self.registry.get(state.current_item.indexable)
            plural = indexable.labels.plural.lower()

            if state.current_item.tenant_id is not None:
                self._success(f"Indexing {plural} on site {state.current_item.tenant_id}...")
            else:
                self._success(f"Indexing {plural} (globally)...")

        if state.is_first_step:
            logger.info("Full sync started", queue_length=len(state.queue) + 1)
            if self.metrics:
                self.metrics.record_run("started")

        item = state.current_item
        with sync_item_context(item.indexable, item.tenant_id), self._tenant_scope(item):
            if item.put_mapping:
                self.put_mapping()

            self.index_objects()

        state.is_first_step = False
        self.reporter.checkpoint(self.state)
        self._record_step("item", item.indexable, started)

    @contextmanager
    def _tenant_scope(self, item: WorkItem) -> Iterator[None]:
        if self.tenants.is_multi_tenant and item.tenant_id is not None:
            with self.tenants.switched_to(item.tenant_id):
                yield
        else:
            yield

    def put_mapping(self) -> None:
        """Delete the current item's index and recreate it with its mapping."""
        state = self._require_state()
        item = state.current_item
        item.put_mapping = False

        if self.hooks.skip_index_reset(False, state, self.args):
            logger.info("Index reset skipped by hook", indexable=item.indexable, tenant_id=item.tenant_id)
            return

        indexable = self.registry.get(item.indexable)

        try:
            indexable.delete_index()
            result = indexable.put_mapping()
        except SearchBackendError as e:
            logger.error("Mapping replacement failed", indexable=item.indexable, tenant_id=item.tenant_id, error=str(e))
            result = False

        self.hooks.on_put_mapping(state, indexable)

        if result:
            self._success("Mapping sent")
        else:
            if self.metrics:
                self.metrics.record_backend_error(item.indexable, "put_mapping")
            self._error("Mapping failed")

    def index_objects(self) -> None:
        """Query the next page and either index it or close the item."""
        state = self._require_state()
        self.current_query = self.get_objects_to_index()

        state.found_items = int(self.current_query.total_objects)

        if state.found_items and state.offset < state.found_items:
            if self.current_query.objects:
                self.index_next_batch()
                return
            plural = self.registry.get(state.current_item.indexable).labels.plural.lower()
            self._error(f"Stopped indexing {plural} at {state.offset}/{state.found_items}: no objects returned")

        self.index_cleanup()

    def get_objects_to_index(self) -> QueryResult:
        """Query the page of the current item starting at the current offset.

        Page size comes from the run arguments, else the stored ``bulk_setting``,
        else the configured default, and then passes through the ``per_page``
        hook. Values below 1 fall back to the configured default.
        """
        state = self._require_state()
        indexable = self.registry.get(state.current_item.indexable)

        per_page = self.args.per_page or self.store.get(BULK_SETTING_KEY, self.per_page)
        per_page = self._page_size(per_page, "page size setting")
        per_page = self._page_size(self.hooks.per_page(per_page), "per_page hook")

        self.hooks.before_page(state, state.offset == 0, indexable)

        args = self.hooks.query_args(QueryArgs(per_page=per_page, offset=state.offset), indexable)

        return indexable.query_content(args)

    def _page_size(self, value: Any, source: str) -> int:
        try:
            per_page = int(value)
        except (TypeError, ValueError):
            per_page = 0

        if per_page < 1:
            logger.warning("Ignoring invalid page size", source=source, value=value, fallback=self.per_page)
            return self.per_page
        return per_page

    def index_next_batch(self) -> None:
        """Bulk index the queried page, skipping vetoed objects."""
        state = self._require_state()
        indexable = self.registry.get(state.current_item.indexable)
        objects = self.current_query.objects

        queued_items: Dict[Any, bool] = {}
        vetoed = 0
        for obj in objects:
            if self.hooks.kill_object_sync(False, obj, indexable):
                vetoed += 1
                continue
            queued_items[indexable.object_id(obj)] = True

        state.offset = state.offset + len(objects)

        failed = 0
        if queued_items:
            try:
                response = indexable.bulk_index(list(queued_items))
            except SearchBackendError as e:
                failed = len(queued_items)
                if self.metrics:
                    self.metrics.record_backend_error(indexable.slug, "bulk_index")
                self._error("\n".join(e.messages))
            else:
                if response.get("errors") is True:
                    failed_objects = failed_bulk_items(response)
                    failed = len(failed_objects)
                    self.output_index_errors(indexable, failed_objects)

        if self.metrics:
            self.metrics.record_batch(indexable.slug, len(queued_items) - failed, failed, vetoed)

        self._success(f"Processed {state.offset}/{state.found_items}...")

    def index_cleanup(self) -> None:
        """Close the current item so the next step dequeues a new one."""
        state = self._require_state()
        logger.debug("Sync item finished", indexable=state.current_item.indexable, tenant_id=state.current_item.tenant_id)
        state.offset = 0
        state.current_item = None

    def output_index_errors(self, indexable: Indexable, failed_objects: Iterable[Dict[str, Any]]) -> None:
        """Report the documents a bulk request rejected."""
        self._error(format_index_errors(failed_objects, indexable.labels.singular))

    # Aliases

    def process_next_alias(self) -> None:
        """Build the network alias of the next backlog entry."""
        state = self._require_state()
        started = time.time()

        slug = state.alias_backlog.pop(0)
        indexable = self.registry.get(slug)
        plural = indexable.labels.plural.lower()

        indexes = []
        for tenant in self.tenants.list_tenants():
            with self.tenants.switched_to(tenant.id):
                indexes.append(indexable.get_index_name())

        try:
            result = indexable.create_alias(indexes)
        except SearchBackendError as e:
            logger.error("Network alias creation failed", indexable=slug, error=str(e))
            result = False

        if result:
            self._success(f"Network alias created for {plural} ...")
        else:
            if self.metrics:
                self.metrics.record_backend_error(slug, "create_alias")
            self._error(f"Network alias creation failed for {plural} ...")

        self._record_step("alias", slug, started)

    # Completion

    def full_index_complete(self) -> None:
        """Discard the run state and report completion."""
        self.state = None
        self.current_query = None
        self.reporter.checkpoint(None)

        self.hooks.on_complete()

        if self.metrics:
            self.metrics.record_run("completed")
        self._success("Sync complete")

    # Queries

    def is_full_reindexing(self, indexable_slug: str, tenant_id: Optional[int] = None) -> bool:
        """Whether ``indexable_slug`` is being wiped and rebuilt (for ``tenant_id``).

        Scans queued items, then the current item. Items of other indexables
        are skipped; the first item of this indexable without a pending
        mapping replacement ends the scan.
        """
        state = self.state if self.state is not None else self._load_state()
        if state is None:
            return bool(self.hooks.is_full_reindexing(False, indexable_slug, tenant_id))

        items = list(state.queue)
        if state.current_item is not None:
            items.append(state.current_item)

        is_full_reindexing = False
        for item in items:
            if item.indexable != indexable_slug:
                continue

            if not item.put_mapping:
                break

            if (item.tenant_id is None and not tenant_id) or item.tenant_id == tenant_id:
                is_full_reindexing = True

        return bool(self.hooks.is_full_reindexing(is_full_reindexing, indexable_slug, tenant_id))

    # Output

    def _success(self, message: str) -> None:
        self.reporter.success(self.state, message, self.args.output)

    def _error(self, message: str) -> None:
        self.reporter.error(self.state, message, self.args.output)

    def _record_step(self, kind: str, indexable_slug: str, started: float) -> None:
        duration = time.time() - started
        log_performance(f"sync_{kind}_step", duration * 1000, indexable=indexable_slug)
        if self.metrics:
            queue_length = len(self.state.queue) if self.state is not None else 0
            self.metrics.record_step(kind, duration, queue_length)


def build_orchestrator(
    config: SyncConfig,
    registry: IndexableRegistry,
    tenants: Optional[TenantDirectory] = None,
    hooks: Optional[SyncHooks] = None,
    store: Optional[CheckpointStore] = None,
) -> SyncOrchestrator:
    """Wire an orchestrator from configuration.

    Builds the checkpoint store, the metrics collector, and (when
    ``sync_publish_events`` is set) a redis progress publisher.
    """
    sinks = []
    if config.sync_publish_events:
        sinks.append(event_publisher_sink(create_event_publisher(config.sync_redis_url)))

    if tenants is None:
        tenants = StaticTenantDirectory.single()
    if config.sync_multi_tenant and not tenants.is_multi_tenant:
        logger.warning("sync_multi_tenant is set but the tenant directory is single-tenant")

    orchestrator = SyncOrchestrator(
        registry=registry,
        store=store or create_checkpoint_store(config),
        tenants=tenants,
        hooks=hooks,
        per_page=config.sync_per_page,
        metrics=get_metrics_collector("searchsync"),
        sinks=sinks,
    )
    orchestrator.setup()
    return orchestrator
