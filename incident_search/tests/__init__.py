"""Tests for incident_search."""
