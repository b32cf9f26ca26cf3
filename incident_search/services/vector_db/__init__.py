"""Vector database services module."""

# Export types first to avoid circular imports
from incident_search.services.vector_db.types import (
    RowMap,
    SearchResult,
    SearchSpec,
    VectorFieldSpec,
)
from incident_search.services.vector_db.base import VectorStore
from incident_search.services.vector_db.projector import ResultProjector
from incident_search.services.vector_db.query_builder import (
    MultiVectorQueryBuilder,
    build_query,
    build_search_spec,
)

__all__ = [
    "MultiVectorQueryBuilder",
    "ResultProjector",
    "RowMap",
    "SearchResult",
    "SearchSpec",
    "VectorFieldSpec",
    "VectorStore",
    "build_query",
    "build_search_spec",
]
