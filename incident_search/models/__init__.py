"""Record types and mapping tables."""

from incident_search.models.incidents import (
    INCIDENT_DOCUMENT_MAPPING,
    INCIDENT_KUSTO_MAPPING,
    EmbeddableRecord,
    Incident,
)
from incident_search.models.mapping import FieldMapping, FieldSpec

__all__ = [
    "EmbeddableRecord",
    "Incident",
    "FieldMapping",
    "FieldSpec",
    "INCIDENT_DOCUMENT_MAPPING",
    "INCIDENT_KUSTO_MAPPING",
]
