"""Durable key/value storage for sync checkpoints and sync settings.

The run state lives under ``INDEX_META_KEY``; sibling keys hold the last sync
time, upgrade markers, and the runtime page-size override. Values must be
JSON-serializable.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import redis
import structlog

from ..common.config import BaseConfig

logger = structlog.get_logger("sync.checkpoint")

INDEX_META_KEY = "index_meta"
LAST_SYNC_KEY = "last_sync"
NEED_UPGRADE_SYNC_KEY = "need_upgrade_sync"
FEATURE_AUTO_ACTIVATED_SYNC_KEY = "feature_auto_activated_sync"
BULK_SETTING_KEY = "bulk_setting"


class CheckpointStore(ABC):
    """Abstract key/value store for checkpoints."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under ``key`` or ``default``."""
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``; missing keys are ignored."""
        pass


class MemoryCheckpointStore(CheckpointStore):
    """Process-local store.

    Values are round-tripped through JSON so callers observe exactly what a
    durable store would give back.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._data.get(key)
        if raw is None:
            return default
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data


class RedisCheckpointStore(CheckpointStore):
    """Redis-backed store; values are JSON strings under ``{prefix}{key}``."""

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        prefix: str = "searchsync:",
        client: Optional[redis.Redis] = None
    ):
        self.redis_client = client if client is not None else redis.from_url(redis_url)
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str, default: Any = None) -> Any:
        try:
            raw = self.redis_client.get(self._key(key))
        except redis.RedisError as e:
            logger.error("Failed to read checkpoint", key=key, error=str(e))
            raise

        if raw is None:
            return default
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8")
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        try:
            self.redis_client.set(self._key(key), json.dumps(value))
        except redis.RedisError as e:
            logger.error("Failed to write checkpoint", key=key, error=str(e))
            raise

    def delete(self, key: str) -> None:
        try:
            self.redis_client.delete(self._key(key))
        except redis.RedisError as e:
            logger.error("Failed to delete checkpoint", key=key, error=str(e))
            raise


def create_checkpoint_store(config: BaseConfig) -> CheckpointStore:
    """Create the checkpoint store selected by ``sync_checkpoint_backend``."""
    backend = config.sync_checkpoint_backend.lower()
    if backend == "redis":
        return RedisCheckpointStore(config.sync_redis_url, prefix=config.sync_checkpoint_prefix)
    if backend == "memory":
        logger.warning("Using in-memory checkpoint store; runs will not survive a restart")
        return MemoryCheckpointStore()
    raise ValueError(f"Unsupported checkpoint backend: {config.sync_checkpoint_backend}")
