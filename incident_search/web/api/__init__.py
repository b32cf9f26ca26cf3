"""API package for incident_search."""

from incident_search.web.api import incidents, monitoring

__all__ = [
    "incidents",
    "monitoring",
]
