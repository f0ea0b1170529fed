"""Resumable full-sync orchestration for search indexes.

Subpackages:
- ``searchsync.common``: configuration, logging, metrics, events, and tenancy.
- ``searchsync.search_backend``: search backend abstraction and the OpenSearch adapter.
- ``searchsync.indexables``: indexable contract, backend-bound base class, and registry.
- ``searchsync.sync``: run state, checkpointing, hooks, progress, and the orchestrator.
- ``searchsync.api``: FastAPI driver that advances a sync one tick per request.

Usage:
- Build one ``SyncOrchestrator`` per process and inject it into the driver
  (HTTP app, CLI, scheduled task) that advances it.
"""

__version__ = "0.1.0"
