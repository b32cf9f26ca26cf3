"""Upstream incident source on Azure Data Explorer (Kusto)."""

import asyncio
from typing import Any, Dict, List, Optional

from azure.identity import DefaultAzureCredential
from azure.kusto.data import KustoClient, KustoConnectionStringBuilder
from azure.kusto.data.exceptions import KustoError
from loguru import logger

from incident_search.exceptions import AuthError, ItemProjectionError, SourceError
from incident_search.models.incidents import INCIDENT_KUSTO_MAPPING, Incident
from incident_search.settings import settings


class KustoIncidentSource:
    """Runs the incident query against Kusto and decodes the rows."""

    def __init__(
        self,
        client: Optional[KustoClient] = None,
        cluster_uri: Optional[str] = settings.kusto_uri,
        database: Optional[str] = settings.kusto_database,
        tenant_id: Optional[str] = settings.kusto_tenant_id,
    ):
        """
        Initialize the Kusto source.

        :param client: existing Kusto client
        :param cluster_uri: Kusto cluster URI
        :param database: Kusto database queried by default
        :param tenant_id: Azure AD tenant for interactive sign-in
        :raises AuthError: if the client cannot be built
        """
        if client is None:
            if not cluster_uri:
                raise AuthError("Kusto cluster URI must be configured")
            try:
                credential = DefaultAzureCredential(
                    exclude_interactive_browser_credential=False,
                    interactive_browser_tenant_id=tenant_id,
                )
                kcsb = KustoConnectionStringBuilder.with_azure_token_credential(
                    cluster_uri, credential
                )
                client = KustoClient(kcsb)
            except (ValueError, KustoError) as e:
                raise AuthError(f"Cannot create Kusto client: {e}") from e
        self.client = client
        self.database = database
        logger.info(f"Initialized Kusto incident source: {cluster_uri}")

    async def fetch_rows(
        self, query: str, database: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Run a query and return the primary result rows.

        :param query: KQL query
        :param database: database override
        :returns: one column-name keyed dict per row
        :raises SourceError: if the query fails
        """
        database = database or self.database
        if not database:
            raise SourceError("Kusto database must be provided")

        loop = asyncio.get_event_loop()
        logger.debug(f"Running Kusto query on {database}: {query}")
        try:
            response = await loop.run_in_executor(
                None, lambda: self.client.execute(database, query)
            )
        except KustoError as e:
            logger.error(f"Kusto query failed: {e}")
            raise SourceError(f"Kusto query failed: {e}") from e

        if not response.primary_results:
            return []
        return [row.to_dict() for row in response.primary_results[0]]

    async def fetch_incidents(
        self,
        query: str = settings.kusto_incident_query,
        database: Optional[str] = None,
    ) -> List[Incident]:
        """
        Fetch incidents, skipping rows that cannot be decoded.

        :param query: KQL query returning incident columns
        :param database: database override
        :returns: decoded incidents in query order
        """
        rows = await self.fetch_rows(query, database=database)
        incidents = []
        for row in rows:
            try:
                incidents.append(INCIDENT_KUSTO_MAPPING.build(row))
            except ItemProjectionError as e:
                logger.warning(f"Skipping Kusto row: {e}")
        logger.info(f"Fetched {len(incidents)} incidents from Kusto ({len(rows)} rows)")
        return incidents

    def close(self) -> None:
        self.client.close()
