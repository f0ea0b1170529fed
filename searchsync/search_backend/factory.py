"""Search backend factory.

Centralizes creation of concrete ``SearchBackend`` implementations so callers
don't depend on implementation details.
"""

from enum import Enum
from typing import Any, Dict

import structlog

from ..common.config import BaseConfig
from .base import SearchBackend
from .opensearch import OpenSearchBackend

logger = structlog.get_logger("search_backend.factory")


class SearchBackendType(Enum):
    """Supported search backend types."""
    OPENSEARCH = "opensearch"


class SearchBackendFactory:
    """Factory for creating search backend instances."""

    @staticmethod
    def create(
        backend_type: SearchBackendType,
        config: Dict[str, Any],
        **kwargs: Any
    ) -> SearchBackend:
        """Create a search backend instance.

        Parameters
        - backend_type: A ``SearchBackendType`` enum value
        - config: Backend-specific parameters (e.g., hosts for OpenSearch)
        - kwargs: Additional overrides forwarded to the implementation
        """
        if backend_type == SearchBackendType.OPENSEARCH:
            hosts = config.get("hosts", ["http://localhost:9200"])
            if not hosts:
                raise ValueError("OpenSearch requires 'hosts' in config")

            return OpenSearchBackend(
                hosts=hosts,
                username=config.get("username"),
                password=config.get("password"),
                verify_certs=config.get("verify_certs", False),
                ssl_assert_hostname=config.get("ssl_assert_hostname", False),
                ssl_show_warn=config.get("ssl_show_warn", False),
                **kwargs
            )

        raise ValueError(f"Unsupported search backend type: {backend_type}")


def create_search_backend(backend_type: str, config: Dict[str, Any], **kwargs: Any) -> SearchBackend:
    """Convenience function to create a search backend."""
    try:
        backend_type_enum = SearchBackendType(backend_type)
    except ValueError:
        raise ValueError(f"Unsupported search backend type: {backend_type}")
    return SearchBackendFactory.create(backend_type_enum, config, **kwargs)


def create_search_backend_from_config(config: BaseConfig) -> SearchBackend:
    """Create the OpenSearch backend described by ``config``."""
    backend_config = {
        "hosts": config.opensearch_hosts,
        "username": config.sync_opensearch_username,
        "password": config.sync_opensearch_password,
        "verify_certs": config.sync_opensearch_verify_certs,
        "ssl_assert_hostname": config.sync_opensearch_ssl_assert_hostname,
        "ssl_show_warn": config.sync_opensearch_ssl_show_warn,
    }
    logger.debug("Creating search backend", backend="opensearch", hosts=backend_config["hosts"])
    return SearchBackendFactory.create(SearchBackendType.OPENSEARCH, backend_config)
