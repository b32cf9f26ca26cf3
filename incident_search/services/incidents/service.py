"""Incident ingestion and similar-incident search."""

from typing import Dict, List, Optional, Tuple

from loguru import logger

from incident_search.exceptions import ProviderError, ValidationError
from incident_search.models.incidents import INCIDENT_DOCUMENT_MAPPING, Incident
from incident_search.models.search import IncidentSearchParameters
from incident_search.services.ai.dimension_reducer import PcaProjection
from incident_search.services.ai.embedding_provider import EmbeddingProvider
from incident_search.services.ingest.kusto_source import KustoIncidentSource
from incident_search.services.ingest.pipeline import IngestionPipeline, IngestionReport
from incident_search.services.vector_db.base import VectorStore
from incident_search.services.vector_db.projector import ResultProjector
from incident_search.services.vector_db.query_builder import MultiVectorQueryBuilder
from incident_search.services.vector_db.types import SearchResult
from incident_search.settings import settings

TITLE_FIELD = "title_embedding"
SUMMARY_FIELD = "summary_embedding"


class IncidentVectorService:
    """Service for ingesting incidents and finding similar ones."""

    def __init__(
        self,
        store: VectorStore,
        provider: EmbeddingProvider,
        source: Optional[KustoIncidentSource] = None,
        reduced_dimension: Optional[int] = settings.reduced_dimension,
    ):
        """
        Initialize the incident service.

        :param store: vector store holding incident documents
        :param provider: embedding provider for ingestion and queries
        :param source: upstream Kusto source, only needed for ingestion
        :param reduced_dimension: PCA target dimension, None to store raw
        """
        self.store = store
        self.provider = provider
        self.source = source
        self.reduced_dimension = reduced_dimension
        self.query_builder: MultiVectorQueryBuilder[Incident] = MultiVectorQueryBuilder(
            store, ResultProjector(INCIDENT_DOCUMENT_MAPPING)
        )
        # Projections fitted by the last ingestion, per (database, container)
        self._projections: Dict[Tuple[str, str], Dict[str, PcaProjection]] = {}

    def pipeline_for(self, database_name: str, container_name: str) -> IngestionPipeline:
        """Ingestion pipeline writing to one container."""
        return IngestionPipeline(
            provider=self.provider,
            store=self.store,
            reduced_dimension=self.reduced_dimension,
            container_name=container_name,
            partition_key_path=settings.cosmos_partition_key_path,
            database_name=database_name,
        )

    async def ingest_incidents(
        self,
        incidents: List[Incident],
        database_name: str,
        container_name: str = settings.cosmos_container_name,
    ) -> IngestionReport:
        """
        Embed, reduce and store incidents.

        :param incidents: incidents to ingest
        :param database_name: target database
        :param container_name: target container
        :returns: ingestion report
        """
        if not database_name:
            raise ValidationError("Database name is required")

        pipeline = self.pipeline_for(database_name, container_name)
        report = await pipeline.run(
            incidents,
            embed_field_names=[TITLE_FIELD, SUMMARY_FIELD],
            batch_size=settings.ingest_batch_size,
            inter_batch_delay=settings.ingest_inter_batch_delay,
        )
        self._projections[(database_name, container_name)] = report.projections
        return report

    async def ingest_from_source(
        self,
        database_name: str,
        container_name: str = settings.cosmos_container_name,
        query: str = settings.kusto_incident_query,
    ) -> IngestionReport:
        """
        Fetch incidents from Kusto and ingest them.

        :param database_name: target Cosmos database
        :param container_name: target container
        :param query: KQL incident query
        :returns: ingestion report, empty when Kusto returned nothing
        """
        if not database_name:
            raise ValidationError("Database name is required")
        if self.source is None:
            raise ValidationError("No incident source configured")

        logger.info("Starting data ingestion process")
        incidents = await self.source.fetch_incidents(query)
        if not incidents:
            logger.info("No incidents found in Kusto query results")
            return IngestionReport()

        return await self.ingest_incidents(incidents, database_name, container_name)

    async def _template_embeddings(
        self, incident: Incident, database_name: str, container_name: str
    ) -> Dict[str, List[float]]:
        embeddings: Dict[str, List[float]] = {}
        missing = []
        for field_name in (TITLE_FIELD, SUMMARY_FIELD):
            vector = incident.get_embedding(field_name)
            if vector:
                embeddings[field_name] = vector
            else:
                missing.append(field_name)

        if missing:
            texts = [incident.embeddable_text(name) for name in missing]
            vectors = await self.provider.embed_many(texts)
            if len(vectors) < len(texts):
                raise ProviderError(
                    f"Embedding provider returned {len(vectors)} vectors for {len(texts)} texts"
                )
            projections = self._projections.get((database_name, container_name), {})
            for field_name, vector in zip(missing, vectors):
                projection = projections.get(field_name)
                if projection is not None and len(vector) == projection.input_dimension:
                    vector = projection.transform([vector])[0]
                embeddings[field_name] = vector

        return embeddings

    async def search_similar_incidents(
        self, params: IncidentSearchParameters
    ) -> List[SearchResult[Incident]]:
        """
        Find incidents similar to a template incident.

        Template embeddings are used as given; missing ones are generated
        from the title and summary, then mapped into the stored space when
        this service fitted the container's projection.

        :param params: search parameters
        :returns: results ordered by ascending combined distance
        """
        if not params.database_name:
            raise ValidationError("Database name is required")

        logger.info(
            f"Searching for incidents similar to incident with title: {params.incident.title}"
        )
        embeddings = await self._template_embeddings(
            params.incident, params.database_name, params.collection_name
        )
        weights = {
            TITLE_FIELD: params.title_weight,
            SUMMARY_FIELD: params.summary_weight,
        }
        return await self.query_builder.search(
            params.collection_name,
            embeddings,
            weights,
            max_results=params.max_results,
            database_name=params.database_name,
        )
