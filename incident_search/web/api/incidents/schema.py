"""Incidents API schemas."""
from typing import List, Optional

from pydantic import BaseModel

from incident_search.models.incidents import Incident


class IngestResponse(BaseModel):
    """Response for an ingestion run."""

    message: str
    collection_name: Optional[str] = None
    ingested: int = 0


class SourceIncident(BaseModel):
    """Title and summary of the search template."""

    title: str
    summary: str


class SimilarIncident(BaseModel):
    """One search hit."""

    incident: Incident
    similarity_score: float


class SimilarIncidentsResponse(BaseModel):
    """Response for a similar-incident search."""

    source_incident: SourceIncident
    results: List[SimilarIncident]
    count: int
