"""Common utilities shared across the sync packages.

Includes:
- ``config``: Pydantic-based configuration from environment variables.
- ``logging``: structured logging setup with structlog.
- ``metrics``: Prometheus metrics for sync runs and the HTTP driver.
- ``events``: Redis pub/sub publishing of sync progress events.
- ``tenancy``: tenant directory contract and scoped tenant switching.

Import pattern:
- from searchsync.common.config import SyncConfig
- from searchsync.common.logging import configure_logging
"""
