"""OpenSearch search backend implementation."""

from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog
from opensearchpy import OpenSearch, exceptions
from opensearchpy.helpers import bulk

from ..common.metrics import measure_time
from .base import BulkResponse, SearchBackend, SearchBackendConnectionError, SearchBackendRequestError

logger = structlog.get_logger("search_backend.opensearch")


class OpenSearchBackend(SearchBackend):
    """OpenSearch-based search backend."""

    def __init__(
        self,
        hosts: List[str],
        username: Optional[str] = None,
        password: Optional[str] = None,
        verify_certs: bool = False,
        ssl_assert_hostname: bool = False,
        ssl_show_warn: bool = False,
        client: Optional[OpenSearch] = None,
    ):
        """Initialize the OpenSearch backend.

        Args:
            hosts: List of OpenSearch host URLs
            username: OpenSearch username
            password: OpenSearch password
            verify_certs: Whether to verify SSL certificates
            ssl_assert_hostname: Whether to assert hostname
            ssl_show_warn: Whether to show SSL warnings
            client: Preconfigured client, used instead of building one
        """
        if not hosts:
            raise ValueError("OpenSearchBackend requires at least one host")
        self.hosts = hosts

        self.client = client or OpenSearch(
            hosts=hosts,
            http_auth=(username, password) if username and password else None,
            verify_certs=verify_certs,
            ssl_assert_hostname=ssl_assert_hostname,
            ssl_show_warn=ssl_show_warn,
            use_ssl=True if hosts[0].startswith('https') else False,
        )

    def delete_index(self, index_name: str) -> bool:
        """Delete an index, treating a missing index as success."""
        try:
            self.client.indices.delete(index=index_name)
            logger.info("OpenSearch index deleted", index_name=index_name)
            return True
        except exceptions.NotFoundError:
            logger.debug("OpenSearch index not found for deletion", index_name=index_name)
            return True
        except exceptions.OpenSearchException as e:
            logger.error("Failed to delete OpenSearch index", index_name=index_name, error=str(e))
            return False

    @measure_time("create_index")
    def create_index(self, index_name: str, body: Dict[str, Any]) -> bool:
        """Create an index with the given settings and mappings."""
        try:
            response = self.client.indices.create(index=index_name, body=body)
            acknowledged = bool(response.get("acknowledged", False))
            logger.info("OpenSearch index created", index_name=index_name, acknowledged=acknowledged)
            return acknowledged
        except exceptions.OpenSearchException as e:
            logger.error("Failed to create OpenSearch index", index_name=index_name, error=str(e))
            return False

    def bulk_index(
        self,
        index_name: str,
        documents: Sequence[Tuple[str, Dict[str, Any]]]
    ) -> BulkResponse:
        """Index documents in one bulk request."""
        if not documents:
            return {"errors": False, "items": []}

        actions = [
            {
                "_op_type": "index",
                "_index": index_name,
                "_id": doc_id,
                "_source": source,
            }
            for doc_id, source in documents
        ]

        try:
            success_count, failed_items = bulk(
                self.client,
                actions,
                raise_on_error=False,
                raise_on_exception=True,
                stats_only=False,
            )
        except exceptions.ConnectionError as e:
            logger.error("OpenSearch unreachable during bulk", index_name=index_name, error=str(e))
            raise SearchBackendConnectionError(str(e)) from e
        except exceptions.OpenSearchException as e:
            logger.error("OpenSearch bulk request failed", index_name=index_name, error=str(e))
            raise SearchBackendRequestError(str(e)) from e

        if failed_items:
            logger.warning(
                "Some documents failed to index in OpenSearch",
                index_name=index_name,
                failed_count=len(failed_items),
                total_count=len(documents)
            )

        logger.debug("Bulk indexed documents in OpenSearch", index_name=index_name, count=success_count)

        return {"errors": bool(failed_items), "items": list(failed_items)}

    @measure_time("put_alias")
    def put_alias(self, alias_name: str, index_names: List[str]) -> bool:
        """Point ``alias_name`` at exactly ``index_names``.

        Any index the alias currently covers is removed from it first.
        """
        actions: List[Dict[str, Any]] = []
        try:
            if self.client.indices.exists_alias(name=alias_name):
                current = self.client.indices.get_alias(name=alias_name)
                for index_name in current:
                    actions.append({"remove": {"index": index_name, "alias": alias_name}})
        except exceptions.NotFoundError:
            pass
        except exceptions.OpenSearchException as e:
            logger.error("Failed to read OpenSearch alias", alias_name=alias_name, error=str(e))
            return False

        for index_name in index_names:
            actions.append({"add": {"index": index_name, "alias": alias_name}})

        try:
            response = self.client.indices.update_aliases(body={"actions": actions})
            acknowledged = bool(response.get("acknowledged", False))
            logger.info(
                "OpenSearch alias updated",
                alias_name=alias_name,
                index_count=len(index_names),
                acknowledged=acknowledged
            )
            return acknowledged
        except exceptions.OpenSearchException as e:
            logger.error("Failed to update OpenSearch alias", alias_name=alias_name, error=str(e))
            return False

    def health_check(self) -> bool:
        """Check if OpenSearch answers a ping."""
        try:
            return bool(self.client.ping())
        except exceptions.OpenSearchException as e:
            logger.warning("OpenSearch health check failed", error=str(e))
            return False
