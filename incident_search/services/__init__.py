"""Services package for incident_search."""

from incident_search.services import ai, incidents, ingest, vector_db

__all__ = [
    "ai",
    "incidents",
    "ingest",
    "vector_db",
]
