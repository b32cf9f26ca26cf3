"""Search request models."""

from pydantic import BaseModel, Field

from incident_search.models.incidents import Incident
from incident_search.settings import settings


class IncidentSearchParameters(BaseModel):
    """Parameters for searching incidents similar to a template incident."""

    incident: Incident = Field(..., description="Incident used as search template")
    database_name: str = Field(..., min_length=1, description="Cosmos database name")
    collection_name: str = Field(
        settings.cosmos_container_name, description="Container to search in"
    )
    title_weight: float = Field(
        settings.search_title_weight, ge=0.0, allow_inf_nan=False
    )
    summary_weight: float = Field(
        settings.search_summary_weight, ge=0.0, allow_inf_nan=False
    )
    max_results: int = Field(
        settings.search_max_results,
        description="Maximum number of results, 0 or less means unbounded",
    )
