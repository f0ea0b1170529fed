"""Configuration management for searchsync.

This module centralizes environment-driven configuration for the sync
orchestrator, its checkpoint store, the OpenSearch backend, and the HTTP
driver. It builds on ``pydantic_settings.BaseSettings`` so configuration can
be provided via environment variables, ``.env`` files, or defaults.

Highlights
- Strongly-typed settings with sensible defaults
- Field names double as (case-insensitive) environment variable names,
  e.g. ``sync_per_page`` is read from ``SYNC_PER_PAGE``
- Small purpose-specific subclasses to keep concerns clear

Usage
- ``config = SyncConfig()`` in your entrypoint
- Or select dynamically: ``config = get_config("api")``
"""

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration shared by every searchsync entrypoint.

    Notes
    - Add new shared settings here so the CLI and the API inherit them.
    - Prefer a typed field over reading ``os.environ`` directly.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    sync_env: str = Field(default="local", description="Deployment environment name")

    # Logging
    sync_log_level: str = Field(default="INFO", description="Root log level")
    sync_log_format: str = Field(default="json", description="``json`` or ``console``")

    # Checkpoint store
    sync_redis_url: str = Field(default="redis://localhost:6379", description="Redis URL for checkpoints and events")
    sync_checkpoint_backend: str = Field(default="redis", description="``redis`` or ``memory``")
    sync_checkpoint_prefix: str = Field(default="searchsync:", description="Key prefix for checkpoint entries")

    # OpenSearch
    sync_opensearch_hosts: str = Field(default="http://localhost:9200", description="Comma separated host URLs")
    sync_opensearch_username: Optional[str] = Field(default=None)
    sync_opensearch_password: Optional[str] = Field(default=None)
    sync_opensearch_verify_certs: bool = Field(default=False)
    sync_opensearch_ssl_assert_hostname: bool = Field(default=False)
    sync_opensearch_ssl_show_warn: bool = Field(default=False)
    sync_index_prefix: str = Field(default="", description="Prefix prepended to every index and alias name")

    @property
    def opensearch_hosts(self) -> List[str]:
        """Return the configured hosts as a list."""
        return [host.strip() for host in self.sync_opensearch_hosts.split(",") if host.strip()]


class SyncConfig(BaseConfig):
    """Configuration for the sync orchestrator.

    Keeps paging and tenancy knobs together.
    """

    sync_per_page: int = Field(default=350, ge=1, description="Objects indexed per step")
    sync_multi_tenant: bool = Field(default=False, description="Expect a multi-tenant directory; only warns when the supplied directory is single-tenant")
    sync_publish_events: bool = Field(default=False, description="Publish progress events on redis pub/sub")


class ApiConfig(SyncConfig):
    """Configuration for the HTTP driver.

    Adds the bind address used by ``searchsync serve``.
    """

    sync_api_host: str = Field(default="0.0.0.0")
    sync_api_port: int = Field(default=9010)


def get_config(name: str) -> BaseConfig:
    """Get configuration for a specific entrypoint.

    Parameters
    - name: Literal name: ``sync`` or ``api``.

    Returns
    - A concrete ``BaseConfig`` subclass pre-wired to read the right env vars.
    """
    config_map = {
        "sync": SyncConfig,
        "api": ApiConfig,
    }

    # Default to ``BaseConfig`` to avoid surprising crashes for unknown names.
    config_class = config_map.get(name, BaseConfig)
    return config_class()

