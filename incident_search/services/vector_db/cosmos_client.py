"""Azure Cosmos DB vector store implementation."""

import asyncio
from functools import lru_cache
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence

from azure.core.exceptions import AzureError, ClientAuthenticationError
from azure.cosmos import PartitionKey
from azure.cosmos.aio import CosmosClient, DatabaseProxy
from azure.identity.aio import DefaultAzureCredential
from loguru import logger

from incident_search.exceptions import AuthError, StoreError
from incident_search.services.vector_db.base import QueryParameter, VectorStore
from incident_search.services.vector_db.types import VectorFieldSpec
from incident_search.settings import settings

# Documents written concurrently per upsert round
UPSERT_CHUNK_SIZE = 25


def build_vector_policies(
    vector_fields: Sequence[VectorFieldSpec],
) -> Dict[str, Dict[str, Any]]:
    """
    Build the Cosmos vector embedding and indexing policies.

    :param vector_fields: one declaration per embedding field
    :returns: ``vector_embedding_policy`` and ``indexing_policy`` keyword args
    """
    vector_embedding_policy = {
        "vectorEmbeddings": [
            {
                "path": field.path,
                "dataType": field.data_type,
                "distanceFunction": field.distance_function,
                "dimensions": field.dimensions,
            }
            for field in vector_fields
        ]
    }
    indexing_policy = {
        "indexingMode": "consistent",
        "automatic": True,
        "includedPaths": [{"path": "/*"}],
        # Vector paths must stay out of the range index
        "excludedPaths": [{"path": '/"_etag"/?'}]
        + [{"path": f"{field.path}/*"} for field in vector_fields],
        "vectorIndexes": [
            {"path": field.path, "type": field.index_type} for field in vector_fields
        ],
    }
    return {
        "vector_embedding_policy": vector_embedding_policy,
        "indexing_policy": indexing_policy,
    }


class CosmosVectorStore(VectorStore):
    """Vector store on an Azure Cosmos DB for NoSQL account."""

    def __init__(
        self,
        client: Optional[CosmosClient] = None,
        database_name: str = settings.cosmos_database_name,
        endpoint: Optional[str] = settings.cosmos_endpoint,
        connection_string: Optional[str] = settings.cosmos_connection_string,
    ):
        """
        Initialize the Cosmos store.

        A connection string takes precedence; an endpoint alone
        authenticates with ``DefaultAzureCredential``.

        :param client: existing Cosmos client
        :param database_name: default database
        :param endpoint: account endpoint
        :param connection_string: account connection string
        :raises AuthError: if no client can be built
        """
        self._credential = None
        if client is None:
            client = self._build_client(endpoint, connection_string)
        self.client = client
        self.database_name = database_name
        # Database handles; creation is idempotent on the server, so two
        # first-time callers may both create without harm.
        self._databases: Dict[str, DatabaseProxy] = {}
        logger.info(f"Initialized Cosmos vector store, database: {database_name}")

    def _build_client(
        self, endpoint: Optional[str], connection_string: Optional[str]
    ) -> CosmosClient:
        try:
            if connection_string:
                return CosmosClient.from_connection_string(connection_string)
            if endpoint:
                self._credential = DefaultAzureCredential()
                return CosmosClient(endpoint, credential=self._credential)
        except (ValueError, KeyError, AzureError) as e:
            raise AuthError(f"Cannot create Cosmos client: {e}") from e
        raise AuthError(
            "Cosmos DB endpoint or connection string must be configured"
        )

    async def _get_database(self, database_name: Optional[str]) -> DatabaseProxy:
        name = database_name or self.database_name
        if not name:
            raise StoreError("Database name must be provided")

        database = self._databases.get(name)
        if database is not None:
            return database

        try:
            database = await self.client.create_database_if_not_exists(id=name)
        except ClientAuthenticationError as e:
            raise AuthError(f"Cosmos authentication failed: {e}") from e
        except AzureError as e:
            logger.error(f"Failed to create or retrieve database {name}: {e}")
            raise StoreError(f"Failed to create or retrieve database '{name}'") from e

        self._databases[name] = database
        return database

    async def ensure_container_exists(
        self,
        container_name: str,
        partition_key_path: str,
        vector_fields: Sequence[VectorFieldSpec],
        database_name: Optional[str] = None,
    ) -> None:
        database = await self._get_database(database_name)
        try:
            await database.create_container_if_not_exists(
                id=container_name,
                partition_key=PartitionKey(path=partition_key_path),
                **build_vector_policies(vector_fields),
            )
        except AzureError as e:
            logger.error(f"Failed to create container {container_name}: {e}")
            raise StoreError(f"Failed to create container '{container_name}'") from e
        logger.info(
            f"Container {container_name} ready with vector fields "
            f"{[field.path for field in vector_fields]}"
        )

    async def upsert(
        self,
        container_name: str,
        items_by_key: Mapping[str, Dict[str, Any]],
        database_name: Optional[str] = None,
    ) -> int:
        database = await self._get_database(database_name)
        container = database.get_container_client(container_name)
        documents = list(items_by_key.values())

        logger.debug(
            f"[VECTOR_DB] Upserting {len(documents)} documents into {container_name}"
        )
        try:
            for start in range(0, len(documents), UPSERT_CHUNK_SIZE):
                chunk = documents[start : start + UPSERT_CHUNK_SIZE]
                await asyncio.gather(*(container.upsert_item(body=doc) for doc in chunk))
        except AzureError as e:
            logger.error(f"Failed to upsert documents to {container_name}: {e}")
            raise StoreError(f"Failed to upsert into '{container_name}'") from e

        logger.info(f"Upserted {len(documents)} documents to {container_name}")
        return len(documents)

    async def query_pages(
        self,
        container_name: str,
        query: str,
        parameters: Sequence[QueryParameter],
        database_name: Optional[str] = None,
    ) -> AsyncIterator[List[Dict[str, Any]]]:
        database = await self._get_database(database_name)
        container = database.get_container_client(container_name)

        logger.debug(f"[VECTOR_DB] Executing query on {container_name}: {query}")
        try:
            pages = container.query_items(query=query, parameters=list(parameters))
            async for page in pages.by_page():
                yield [item async for item in page]
        except AzureError as e:
            logger.error(f"Query failed on {container_name}: {e}")
            raise StoreError(f"Query failed on '{container_name}'") from e

    async def close(self) -> None:
        await self.client.close()
        if self._credential is not None:
            await self._credential.close()


@lru_cache()
def get_cosmos_store() -> CosmosVectorStore:
    """
    Get a singleton instance of the Cosmos vector store.

    :returns: CosmosVectorStore instance
    """
    return CosmosVectorStore(
        database_name=settings.cosmos_database_name,
        endpoint=settings.cosmos_endpoint,
        connection_string=settings.cosmos_connection_string,
    )
