import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from incident_search.exceptions import StoreError
from incident_search.services.incidents.service import IncidentVectorService
from incident_search.tests.conftest import (
    FakeEmbeddingProvider,
    InMemoryVectorStore,
    make_incident,
)
from incident_search.tests.test_incident_service import FakeIncidentSource
from incident_search.web.api.router import api_router


@pytest.fixture
def incident_service(
    store: InMemoryVectorStore, provider: FakeEmbeddingProvider, incidents
) -> IncidentVectorService:
    return IncidentVectorService(
        store=store,
        provider=provider,
        source=FakeIncidentSource(incidents),
        reduced_dimension=3,
    )


@pytest.fixture
def client(incident_service: IncidentVectorService) -> TestClient:
    app = FastAPI()
    app.include_router(api_router, prefix="/api")
    app.state.incident_service = incident_service
    return TestClient(app)


def test_health(client: TestClient):
    assert client.get("/api/health").status_code == 200


def test_ingest_requires_database_name(client: TestClient):
    response = client.post("/api/incidents/ingest")

    assert response.status_code == 400
    assert response.json()["detail"] == "Database name is required"


def test_ingest_then_search(client: TestClient, incidents):
    response = client.post(
        "/api/incidents/ingest",
        params={"database_name": "db", "collection_name": "incidents"},
    )
    assert response.status_code == 200
    assert response.json() == {
        "message": "Successfully ingested incidents into Vector DB",
        "collection_name": "incidents",
        "ingested": 7,
    }

    template = make_incident(50, title=incidents[4].title, summary=incidents[4].summary)
    response = client.post(
        "/api/incidents/search-similar",
        json={
            "incident": template.model_dump(exclude_none=True),
            "database_name": "db",
            "collection_name": "incidents",
            "max_results": 2,
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 2
    assert body["source_incident"] == {
        "title": template.title,
        "summary": template.summary,
    }
    assert body["results"][0]["incident"]["incident_id"] == "INC-4"
    assert body["results"][0]["similarity_score"] == pytest.approx(0.0, abs=1e-9)


def test_ingest_with_empty_source(client: TestClient, incident_service):
    incident_service.source = FakeIncidentSource([])

    response = client.post("/api/incidents/ingest", params={"database_name": "db"})

    assert response.status_code == 200
    assert response.json()["message"] == "No incidents found in Kusto query results"
    assert response.json()["ingested"] == 0


def test_ingest_store_failure(client: TestClient, store: InMemoryVectorStore):
    store.fail_upsert = True

    response = client.post("/api/incidents/ingest", params={"database_name": "db"})

    assert response.status_code == 500
    assert "upsert rejected" in response.json()["detail"]


def test_search_rejects_negative_weight(client: TestClient):
    response = client.post(
        "/api/incidents/search-similar",
        json={
            "incident": {"incident_id": "1", "title": "t", "summary": "s"},
            "database_name": "db",
            "title_weight": -1,
        },
    )

    assert response.status_code == 422


def test_search_store_failure(client: TestClient, store: InMemoryVectorStore):
    class FailingStore(InMemoryVectorStore):
        async def query_pages(self, *args, **kwargs):
            raise StoreError("query failed")
            yield  # pragma: no cover

    client.app.state.incident_service.query_builder.store = FailingStore()

    response = client.post(
        "/api/incidents/search-similar",
        json={
            "incident": {"incident_id": "1", "title": "t", "summary": "s"},
            "database_name": "db",
        },
    )

    assert response.status_code == 500
