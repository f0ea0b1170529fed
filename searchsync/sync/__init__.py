"""Full-sync orchestration.

Primary components:
- ``state``: ``RunState`` / ``WorkItem`` models and the checkpoint format.
- ``checkpoint``: durable key/value stores (memory, redis).
- ``hooks``: typed extension points with no-op defaults.
- ``progress``: progress events, sinks, and bulk error reports.
- ``orchestrator``: the step-wise ``SyncOrchestrator``.
"""

from .checkpoint import CheckpointStore, MemoryCheckpointStore, RedisCheckpointStore
from .errors import CheckpointSchemaError, NoActiveRunError, NoWorkError, SyncError
from .hooks import HookChain, SyncHooks
from .orchestrator import SyncArgs, SyncOrchestrator, build_orchestrator
from .progress import ProgressEvent, ProgressStatus
from .state import RunState, WorkItem

__all__ = [
    "CheckpointSchemaError",
    "CheckpointStore",
    "HookChain",
    "MemoryCheckpointStore",
    "NoActiveRunError",
    "NoWorkError",
    "ProgressEvent",
    "ProgressStatus",
    "RedisCheckpointStore",
    "RunState",
    "SyncArgs",
    "SyncError",
    "SyncHooks",
    "SyncOrchestrator",
    "WorkItem",
    "build_orchestrator",
]
