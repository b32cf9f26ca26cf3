"""Vector store interface."""

import abc
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence

from incident_search.services.vector_db.types import VectorFieldSpec

# Query parameter as sent to the store: {"name": "@embedding0", "value": [...]}
QueryParameter = Dict[str, Any]


class VectorStore(abc.ABC):
    """
    Document store with native per-field vector distance.

    Implementations expose ``VectorDistance(c.<field>, @param)`` inside
    projected and ordered query expressions.
    """

    @abc.abstractmethod
    async def ensure_container_exists(
        self,
        container_name: str,
        partition_key_path: str,
        vector_fields: Sequence[VectorFieldSpec],
        database_name: Optional[str] = None,
    ) -> None:
        """
        Create the container with its vector indexes when missing.

        Idempotent on the store side; concurrent callers may both issue it.

        :raises StoreError: if creation fails
        """

    @abc.abstractmethod
    async def upsert(
        self,
        container_name: str,
        items_by_key: Mapping[str, Dict[str, Any]],
        database_name: Optional[str] = None,
    ) -> int:
        """
        Insert or replace documents by key.

        :returns: number of documents written
        :raises StoreError: if a write fails
        """

    @abc.abstractmethod
    def query_pages(
        self,
        container_name: str,
        query: str,
        parameters: Sequence[QueryParameter],
        database_name: Optional[str] = None,
    ) -> AsyncIterator[List[Dict[str, Any]]]:
        """
        Run a query and yield result pages in store order.

        :raises StoreError: if the query fails
        """

    async def close(self) -> None:
        """Release client resources."""
