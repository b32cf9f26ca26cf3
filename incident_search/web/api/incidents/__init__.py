"""Incidents API."""

from incident_search.web.api.incidents.views import router

__all__ = ["router"]
