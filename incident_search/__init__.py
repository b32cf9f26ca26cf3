"""incident_search package."""
