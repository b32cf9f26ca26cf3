"""Incident vector search service."""

from incident_search.services.incidents.service import IncidentVectorService

__all__ = ["IncidentVectorService"]
