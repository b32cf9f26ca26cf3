"""Exceptions raised by the incident search services."""


class IncidentSearchError(Exception):
    """Base class for all incident search errors."""


class ValidationError(IncidentSearchError):
    """Malformed input rejected before any remote call."""


class ProviderError(IncidentSearchError):
    """The embedding provider call failed outright."""


class StoreError(IncidentSearchError):
    """Container creation, upsert or query against the vector store failed."""


class ItemProjectionError(IncidentSearchError):
    """A single result row could not be coerced into the target type."""


class AuthError(IncidentSearchError):
    """Credentials or connection settings could not be resolved."""


class SourceError(IncidentSearchError):
    """The upstream incident source query failed."""
