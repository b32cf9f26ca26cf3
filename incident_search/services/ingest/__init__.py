"""Incident ingestion services."""

from incident_search.services.ingest.pipeline import (
    EmbeddingBatch,
    IngestionPipeline,
    IngestionReport,
)

__all__ = ["EmbeddingBatch", "IngestionPipeline", "IngestionReport"]
