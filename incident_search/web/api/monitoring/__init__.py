"""API for checking project status."""

from incident_search.web.api.monitoring.views import router

__all__ = ["router"]
