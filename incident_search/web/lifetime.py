from typing import Awaitable, Callable

from fastapi import FastAPI
from loguru import logger

from incident_search.services.ai.embedding_provider import OpenAIEmbeddingProvider
from incident_search.services.incidents.service import IncidentVectorService
from incident_search.services.ingest.kusto_source import KustoIncidentSource
from incident_search.services.vector_db.cosmos_client import get_cosmos_store
from incident_search.settings import settings


def _setup_incident_service(app: FastAPI) -> None:  # pragma: no cover
    """
    Create the incident service and its collaborators.

    The Cosmos store and the embedding provider are required; credential
    problems surface here as AuthError. The Kusto source is only built
    when a cluster URI is configured.

    :param app: fastAPI application.
    """
    store = get_cosmos_store()
    provider = OpenAIEmbeddingProvider()

    source = None
    if settings.kusto_uri:
        source = KustoIncidentSource()
    else:
        logger.warning("Kusto is not configured, ingestion from Kusto is disabled")

    app.state.vector_store = store
    app.state.embedding_provider = provider
    app.state.incident_source = source
    app.state.incident_service = IncidentVectorService(
        store=store,
        provider=provider,
        source=source,
        reduced_dimension=settings.reduced_dimension,
    )


async def _close_incident_service(app: FastAPI) -> None:  # pragma: no cover
    """
    Close remote clients created at startup.

    :param app: fastAPI application.
    """
    if getattr(app.state, "incident_source", None) is not None:
        app.state.incident_source.close()
    if hasattr(app.state, "embedding_provider"):
        await app.state.embedding_provider.close()
    if hasattr(app.state, "vector_store"):
        await app.state.vector_store.close()


def register_startup_event(
    app: FastAPI,
) -> Callable[[], Awaitable[None]]:  # pragma: no cover
    """
    Actions to run on application startup.

    This function uses fastAPI app to store data
    in the state, such as the incident service.

    :param app: the fastAPI application.
    :return: function that actually performs actions.
    """

    @app.on_event("startup")
    async def _startup() -> None:  # noqa: WPS430
        app.middleware_stack = None
        _setup_incident_service(app)
        app.middleware_stack = app.build_middleware_stack()

    return _startup


def register_shutdown_event(
    app: FastAPI,
) -> Callable[[], Awaitable[None]]:  # pragma: no cover
    """
    Actions to run on application's shutdown.

    :param app: fastAPI application.
    :return: function that actually performs actions.
    """

    @app.on_event("shutdown")
    async def _shutdown() -> None:  # noqa: WPS430
        await _close_incident_service(app)

    return _shutdown
