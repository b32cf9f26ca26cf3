"""Incidents API views."""
from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from loguru import logger

from incident_search.exceptions import IncidentSearchError, ValidationError
from incident_search.models.search import IncidentSearchParameters
from incident_search.services.incidents.dependencies import (
    get_incident_service_dependency,
)
from incident_search.services.incidents.service import IncidentVectorService
from incident_search.settings import settings
from incident_search.web.api.incidents.schema import (
    IngestResponse,
    SimilarIncident,
    SimilarIncidentsResponse,
    SourceIncident,
)

router = APIRouter()


@router.post("/ingest", response_model=IngestResponse)
async def ingest_incidents_from_kusto(
    database_name: str = Query("", description="Cosmos database name"),
    collection_name: str = Query(
        settings.cosmos_container_name, description="Cosmos container name"
    ),
    service: IncidentVectorService = Depends(get_incident_service_dependency),
) -> IngestResponse:
    """
    Ingest incidents from Kusto into the vector store.

    :param database_name: target Cosmos database
    :param collection_name: target container
    :param service: incident service dependency
    :returns: ingestion summary
    :raises HTTPException: 400 on invalid input, 500 if ingestion fails
    """
    if not database_name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Database name is required",
        )

    try:
        report = await service.ingest_from_source(database_name, collection_name)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except IncidentSearchError as e:
        logger.error(f"Error ingesting data: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error ingesting data: {e}",
        )

    if not report.ingested:
        return IngestResponse(message="No incidents found in Kusto query results")

    return IngestResponse(
        message="Successfully ingested incidents into Vector DB",
        collection_name=collection_name,
        ingested=report.ingested,
    )


@router.post("/search-similar", response_model=SimilarIncidentsResponse)
async def search_similar_incidents(
    search_params: IncidentSearchParameters = Body(...),
    service: IncidentVectorService = Depends(get_incident_service_dependency),
) -> SimilarIncidentsResponse:
    """
    Find incidents similar to the provided incident.

    :param search_params: template incident, weights and limits
    :param service: incident service dependency
    :returns: similar incidents ordered by relevance
    :raises HTTPException: 400 on invalid input, 500 if the search fails
    """
    try:
        results = await service.search_similar_incidents(search_params)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except IncidentSearchError as e:
        logger.error(f"Error searching for similar incidents: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Error searching for similar incidents: {e}",
        )

    similar = [
        SimilarIncident(incident=result.item, similarity_score=result.score)
        for result in results
    ]
    return SimilarIncidentsResponse(
        source_incident=SourceIncident(
            title=search_params.incident.title,
            summary=search_params.incident.summary,
        ),
        results=similar,
        count=len(similar),
    )
