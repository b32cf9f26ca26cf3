"""Incident service dependencies module."""

from typing import AsyncGenerator

from fastapi import Request

from incident_search.services.incidents.service import IncidentVectorService


async def get_incident_service_dependency(
    request: Request,
) -> AsyncGenerator[IncidentVectorService, None]:
    """
    Get the incident service for FastAPI dependency injection.

    :param request: current request
    :yields: IncidentVectorService built at startup
    """
    yield request.app.state.incident_service
