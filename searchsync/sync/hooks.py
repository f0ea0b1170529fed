"""Extension points of a full sync.

``SyncHooks`` declares one method per phase with a no-op default. Subclass it
and override what you need, then pass the instance (or a ``HookChain`` of
several) to the orchestrator.

Two kinds of hooks
- Filters take the current value first and return the value to use. The
  defaults return it unchanged.
- Actions are notifications and return nothing.

Hooks receive the live ``RunState``. Filters may return a replacement; actions
should treat it as read-only.
"""

from typing import TYPE_CHECKING, Any, Iterable, List, Optional

import structlog

from ..indexables.base import Indexable, QueryArgs
from .state import RunState

if TYPE_CHECKING:
    from .orchestrator import SyncArgs

logger = structlog.get_logger("sync.hooks")


class SyncHooks:
    """No-op hooks; override the phases you care about."""

    def on_start(self, state: RunState, args: "SyncArgs") -> None:
        """Action: a new run was queued (not fired when a run resumes)."""

    def filter_run_state(self, state: RunState, args: "SyncArgs") -> RunState:
        """Filter: replace the freshly built run state."""
        return state

    def skip_index_reset(self, skip: bool, state: RunState, args: "SyncArgs") -> bool:
        """Filter: return ``True`` to keep the existing index instead of deleting and remapping it."""
        return skip

    def on_put_mapping(self, state: RunState, indexable: Indexable) -> None:
        """Action: an index was deleted and its mapping sent."""

    def per_page(self, per_page: int) -> int:
        """Filter: number of objects indexed per step."""
        return per_page

    def before_page(self, state: RunState, start: bool, indexable: Indexable) -> None:
        """Action: a page is about to be queried; ``start`` is true for the first page of an item."""

    def query_args(self, args: QueryArgs, indexable: Indexable) -> QueryArgs:
        """Filter: arguments used to query a page of content."""
        return args

    def kill_object_sync(self, kill: bool, obj: Any, indexable: Indexable) -> bool:
        """Filter: return ``True`` to leave ``obj`` out of the batch."""
        return kill

    def on_complete(self) -> None:
        """Action: the run finished and its state was discarded."""

    def is_full_reindexing(self, is_full_reindexing: bool, indexable_slug: str, tenant_id: Optional[int]) -> bool:
        """Filter: answer of ``SyncOrchestrator.is_full_reindexing``."""
        return is_full_reindexing


class HookChain(SyncHooks):
    """Runs several ``SyncHooks`` in registration order.

    Filters thread their value through every hook. Actions fire on every
    hook; an exception raised by one action is logged and does not stop the
    others or the step.
    """

    def __init__(self, hooks: Optional[Iterable[SyncHooks]] = None):
        self.hooks: List[SyncHooks] = list(hooks or [])

    def add(self, hook: SyncHooks) -> None:
        """Append a hook to the chain."""
        self.hooks.append(hook)

    def _fire(self, name: str, *args: Any) -> None:
        for hook in self.hooks:
            try:
                getattr(hook, name)(*args)
            except Exception as e:
                logger.error(
                    "Error in sync action hook",
                    hook=type(hook).__name__,
                    action=name,
                    error=str(e)
                )

    def on_start(self, state: RunState, args: "SyncArgs") -> None:
        self._fire("on_start", state, args)

    def filter_run_state(self, state: RunState, args: "SyncArgs") -> RunState:
        for hook in self.hooks:
            state = hook.filter_run_state(state, args)
        return state

    def skip_index_reset(self, skip: bool, state: RunState, args: "SyncArgs") -> bool:
        for hook in self.hooks:
            skip = hook.skip_index_reset(skip, state, args)
        return skip

    def on_put_mapping(self, state: RunState, indexable: Indexable) -> None:
        self._fire("on_put_mapping", state, indexable)

    def per_page(self, per_page: int) -> int:
        for hook in self.hooks:
            per_page = hook.per_page(per_page)
        return per_page

    def before_page(self, state: RunState, start: bool, indexable: Indexable) -> None:
        self._fire("before_page", state, start, indexable)

    def query_args(self, args: QueryArgs, indexable: Indexable) -> QueryArgs:
        for hook in self.hooks:
            args = hook.query_args(args, indexable)
        return args

    def kill_object_sync(self, kill: bool, obj: Any, indexable: Indexable) -> bool:
        for hook in self.hooks:
            kill = hook.kill_object_sync(kill, obj, indexable)
        return kill

    def on_complete(self) -> None:
        self._fire("on_complete")

    def is_full_reindexing(self, is_full_reindexing: bool, indexable_slug: str, tenant_id: Optional[int]) -> bool:
        for hook in self.hooks:
            is_full_reindexing = hook.is_full_reindexing(is_full_reindexing, indexable_slug, tenant_id)
        return is_full_reindexing
