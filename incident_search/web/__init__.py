"""Web application for incident_search."""
