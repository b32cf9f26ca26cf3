"""Embed, reduce and store records in batches."""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from loguru import logger

from incident_search.exceptions import ProviderError, StoreError, ValidationError
from incident_search.models.incidents import EmbeddableRecord
from incident_search.services.ai.dimension_reducer import DimensionReducer, PcaProjection
from incident_search.services.ai.embedding_provider import EmbeddingProvider
from incident_search.services.vector_db.base import VectorStore
from incident_search.services.vector_db.types import VectorFieldSpec
from incident_search.settings import settings


@dataclass
class EmbeddingBatch:
    """Texts of one field for one batch, and the vectors that came back."""

    field_name: str
    records: List[EmbeddableRecord]
    texts: List[str]
    vectors: List[List[float]] = field(default_factory=list)

    @property
    def shortfall(self) -> int:
        return len(self.texts) - len(self.vectors)

    def assign(self) -> int:
        """
        Set returned vectors onto records by position.

        Only the first ``len(vectors)`` records get an embedding, the rest
        keep whatever they had.

        :returns: number of records that received a vector
        """
        assigned = min(len(self.records), len(self.vectors))
        for record, vector in zip(self.records[:assigned], self.vectors):
            record.set_embedding(self.field_name, vector)
        return assigned


@dataclass
class IngestionReport:
    """Outcome of one ingestion run."""

    ingested: int = 0
    batches: int = 0
    embedded: Dict[str, int] = field(default_factory=dict)
    shortfall: Dict[str, int] = field(default_factory=dict)
    projections: Dict[str, PcaProjection] = field(default_factory=dict)
    dimensions: Dict[str, int] = field(default_factory=dict)
    duration: float = 0.0


def partition(
    records: Sequence[EmbeddableRecord], batch_size: int
) -> List[List[EmbeddableRecord]]:
    """Split records into consecutive batches of at most ``batch_size``."""
    if batch_size <= 0:
        raise ValidationError(f"Batch size must be positive, got {batch_size}")
    return [
        list(records[start : start + batch_size])
        for start in range(0, len(records), batch_size)
    ]


class IngestionPipeline:
    """
    Turns raw records into stored, embedded, reduced documents.

    Batches run one after another with a pause in between. Inside a batch
    the bulk embedding requests of the different fields run concurrently.
    Reduction is fitted once per field over every vector of the run, and
    the store sees a single upsert at the end. Nothing is retried here;
    upserts are keyed, so running the same records again is safe.
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        store: VectorStore,
        reducer: Optional[DimensionReducer] = None,
        reduced_dimension: Optional[int] = settings.reduced_dimension,
        container_name: str = settings.cosmos_container_name,
        partition_key_path: str = settings.cosmos_partition_key_path,
        database_name: Optional[str] = None,
    ):
        """
        :param provider: embedding provider
        :param store: vector store receiving the documents
        :param reducer: dimension reducer, a default one when omitted
        :param reduced_dimension: target dimension, None disables reduction
        :param container_name: target container
        :param partition_key_path: partition key path of the container
        :param database_name: database override
        """
        self.provider = provider
        self.store = store
        self.reducer = reducer or DimensionReducer()
        self.reduced_dimension = reduced_dimension
        self.container_name = container_name
        self.partition_key_path = partition_key_path
        self.database_name = database_name

    async def _embed_batch(
        self, records: List[EmbeddableRecord], field_names: Sequence[str]
    ) -> List[EmbeddingBatch]:
        batches = [
            EmbeddingBatch(
                field_name=name,
                records=records,
                texts=[record.embeddable_text(name) for record in records],
            )
            for name in field_names
        ]
        # One bulk request per field; all of them finish before assignment
        results = await asyncio.gather(
            *(self.provider.embed_many(batch.texts) for batch in batches),
            return_exceptions=True,
        )
        for batch, result in zip(batches, results):
            if isinstance(result, BaseException):
                if isinstance(result, ProviderError):
                    raise result
                raise ProviderError(
                    f"Embedding request for field '{batch.field_name}' failed: {result}"
                ) from result
            batch.vectors = result
        return batches

    def _reduce(
        self,
        records: Sequence[EmbeddableRecord],
        field_name: str,
        report: IngestionReport,
    ) -> None:
        embedded = [r for r in records if r.get_embedding(field_name) is not None]
        vectors = [r.get_embedding(field_name) for r in embedded]
        if not vectors:
            logger.warning(f"No embeddings collected for field {field_name}")
            return

        if self.reduced_dimension:
            projection = self.reducer.fit(vectors, self.reduced_dimension)
            if projection is not None:
                reduced = projection.transform(vectors)
                for record, vector in zip(embedded, reduced):
                    record.set_embedding(field_name, vector)
                report.projections[field_name] = projection
                vectors = reduced
                logger.info(
                    f"Reduced {len(vectors)} {field_name} vectors to "
                    f"{projection.output_dimension} dimensions"
                )

        report.dimensions[field_name] = len(vectors[0])

    async def ingest(
        self,
        raw_records: Sequence[EmbeddableRecord],
        embed_field_names: Optional[Sequence[str]] = None,
        batch_size: int = settings.ingest_batch_size,
        inter_batch_delay: float = settings.ingest_inter_batch_delay,
    ) -> int:
        """
        Embed, reduce and upsert records.

        :returns: number of records stored
        """
        report = await self.run(
            raw_records,
            embed_field_names=embed_field_names,
            batch_size=batch_size,
            inter_batch_delay=inter_batch_delay,
        )
        return report.ingested

    async def run(
        self,
        raw_records: Sequence[EmbeddableRecord],
        embed_field_names: Optional[Sequence[str]] = None,
        batch_size: int = settings.ingest_batch_size,
        inter_batch_delay: float = settings.ingest_inter_batch_delay,
    ) -> IngestionReport:
        """
        Embed, reduce and upsert records, reporting per-field details.

        :param raw_records: records to ingest, embedded in place
        :param embed_field_names: embedding fields to compute, all declared
            fields of the record type when omitted
        :param batch_size: records per bulk embedding request
        :param inter_batch_delay: pause in seconds between batches
        :returns: ingestion report, ``ingested`` is the stored count
        :raises ProviderError: if an embedding request fails, nothing is stored
        :raises StoreError: if the container or the upsert fails
        """
        start_time = time.time()
        report = IngestionReport()
        records = list(raw_records)
        if not records:
            logger.info("Nothing to ingest")
            return report

        if embed_field_names is None:
            embed_field_names = records[0].embedding_fields()
        field_names = list(dict.fromkeys(embed_field_names))
        batches = partition(records, batch_size)

        logger.info(
            f"Ingesting {len(records)} records in {len(batches)} batches, "
            f"fields: {field_names}"
        )

        for index, batch in enumerate(batches):
            if index > 0 and inter_batch_delay > 0:
                await asyncio.sleep(inter_batch_delay)

            for embedding_batch in await self._embed_batch(batch, field_names):
                assigned = embedding_batch.assign()
                name = embedding_batch.field_name
                report.embedded[name] = report.embedded.get(name, 0) + assigned
                if embedding_batch.shortfall > 0:
                    report.shortfall[name] = (
                        report.shortfall.get(name, 0) + embedding_batch.shortfall
                    )
                    logger.warning(
                        f"Batch {index + 1}/{len(batches)}: {embedding_batch.shortfall} "
                        f"of {len(embedding_batch.texts)} records left without {name}"
                    )
            report.batches += 1
            logger.debug(f"Embedded batch {index + 1}/{len(batches)}")

        for name in field_names:
            self._reduce(records, name, report)

        report.ingested = await self._store(records, report)
        report.duration = time.time() - start_time
        logger.info(
            f"Ingested {report.ingested} records into {self.container_name} "
            f"in {report.duration:.2f}s"
        )
        return report

    def vector_field_specs(
        self, record: EmbeddableRecord, report: IngestionReport
    ) -> List[VectorFieldSpec]:
        """Vector index declarations for the fields embedded in a run."""
        return [
            VectorFieldSpec(
                path=f"/{name}",
                dimensions=dimension,
                index_type=record.vector_index_type(name),
            )
            for name, dimension in report.dimensions.items()
        ]

    async def _store(
        self, records: Sequence[EmbeddableRecord], report: IngestionReport
    ) -> int:
        items_by_key: Dict[str, dict] = {}
        for record in records:
            # Last one wins for duplicate keys, like the store would do
            items_by_key[record.record_key] = record.to_document()

        try:
            await self.store.ensure_container_exists(
                self.container_name,
                self.partition_key_path,
                self.vector_field_specs(records[0], report),
                database_name=self.database_name,
            )
            return await self.store.upsert(
                self.container_name, items_by_key, database_name=self.database_name
            )
        except StoreError as e:
            logger.error(f"Error ingesting data into {self.container_name}: {e}")
            raise

