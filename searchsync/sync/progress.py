"""Progress reporting for full syncs.

Every progress message checkpoints the run state first and is then handed to
the registered sinks, so a sink always observes state that is already
durable. A failing configured sink is logged and skipped; the caller's own
sink is called last and its errors propagate.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

import structlog

from ..common.events import EventPublisher
from .checkpoint import INDEX_META_KEY, CheckpointStore
from .state import RunState

logger = structlog.get_logger("sync.progress")


class ProgressStatus(str, Enum):
    """Outcome attached to a progress message."""
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class ProgressEvent:
    """A progress message plus a snapshot of the run state."""
    message: str
    status: str
    index_meta: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary."""
        return asdict(self)

    @property
    def is_error(self) -> bool:
        return self.status == ProgressStatus.ERROR.value


ProgressSink = Callable[[ProgressEvent], None]


def failed_bulk_items(response: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Return the items of a bulk response that carry an error."""
    failed = []
    for item in response.get("items") or []:
        result = next(iter(item.values()), None) if isinstance(item, dict) else None
        if isinstance(result, dict) and result.get("error"):
            failed.append(item)
    return failed


def format_index_errors(failed_items: Iterable[Dict[str, Any]], singular_label: str) -> str:
    """Build one human readable report of rejected documents."""
    error_text = "The following failed to index:\n\n"

    for item in failed_items:
        result = next(iter(item.values()))
        error = result.get("error") or {}
        if not isinstance(error, dict):
            error = {"type": "error", "reason": str(error)}
        error_text += f"- {result.get('_id')} ({singular_label}): \n"
        error_text += f"[{error.get('type')}] {error.get('reason')}\n"

    return error_text


def event_publisher_sink(publisher: EventPublisher) -> ProgressSink:
    """Adapt an ``EventPublisher`` into a progress sink."""
    def publish(event: ProgressEvent) -> None:
        publisher.publish_sync_progress(event.message, event.status, event.index_meta)
    return publish


class ProgressReporter:
    """Checkpoints run state and fans progress events out to sinks."""

    def __init__(self, store: CheckpointStore, sinks: Optional[Iterable[ProgressSink]] = None):
        self.store = store
        self.sinks: List[ProgressSink] = list(sinks or [])

    def checkpoint(self, state: Optional[RunState]) -> None:
        """Persist ``state``, or delete the checkpoint when no run is active."""
        if state is not None:
            self.store.set(INDEX_META_KEY, state.to_checkpoint())
        else:
            self.store.delete(INDEX_META_KEY)

    def report(
        self,
        state: Optional[RunState],
        message: str,
        status: ProgressStatus,
        sink: Optional[ProgressSink] = None
    ) -> ProgressEvent:
        """Checkpoint, log, and deliver one progress message."""
        self.checkpoint(state)

        event = ProgressEvent(
            message=message,
            status=status.value,
            index_meta=state.to_checkpoint() if state is not None else None,
        )

        if event.is_error:
            logger.warning("Sync progress", message=message, status=event.status)
        else:
            logger.info("Sync progress", message=message, status=event.status)

        for target in self.sinks:
            try:
                target(event)
            except Exception as e:
                logger.error("Progress sink failed", sink=getattr(target, "__name__", repr(target)), error=str(e))

        if sink is not None:
            sink(event)

        return event

    def success(self, state: Optional[RunState], message: str, sink: Optional[ProgressSink] = None) -> ProgressEvent:
        return self.report(state, message, ProgressStatus.SUCCESS, sink)

    def error(self, state: Optional[RunState], message: str, sink: Optional[ProgressSink] = None) -> ProgressEvent:
        return self.report(state, message, ProgressStatus.ERROR, sink)
