import math
from typing import List

import pytest

from incident_search.exceptions import StoreError, ValidationError
from incident_search.models.incidents import INCIDENT_DOCUMENT_MAPPING, Incident
from incident_search.services.vector_db.projector import ResultProjector
from incident_search.services.vector_db.query_builder import (
    MultiVectorQueryBuilder,
    build_query,
    build_search_spec,
)
from incident_search.tests.conftest import InMemoryVectorStore

TITLE = "title_embedding"
SUMMARY = "summary_embedding"

EXPECTED_COMBINED = (
    "0.7 * VectorDistance(c.title_embedding, @embedding0) + "
    "0.3 * VectorDistance(c.summary_embedding, @embedding1)"
)


@pytest.fixture
def builder(store: InMemoryVectorStore) -> MultiVectorQueryBuilder[Incident]:
    return MultiVectorQueryBuilder(store, ResultProjector(INCIDENT_DOCUMENT_MAPPING))


def _seed(store: InMemoryVectorStore, documents: List[dict]) -> None:
    container = store.containers.setdefault("incidents", {})
    for document in documents:
        container[document["id"]] = document


def _document(incident_id: str, title_vector, summary_vector) -> dict:
    return Incident(
        incident_id=incident_id,
        title=f"title {incident_id}",
        summary=f"summary {incident_id}",
        title_embedding=title_vector,
        summary_embedding=summary_vector,
    ).to_document()


def test_query_text():
    spec = build_search_spec(
        {TITLE: [1.0, 0.0], SUMMARY: [0.0, 1.0]},
        {TITLE: 0.7, SUMMARY: 0.3},
        max_results=5,
    )

    query = build_query(spec)

    assert query.text == (
        "SELECT c, "
        "VectorDistance(c.title_embedding, @embedding0) AS title_embedding_Score, "
        "VectorDistance(c.summary_embedding, @embedding1) AS summary_embedding_Score, "
        f"{EXPECTED_COMBINED} AS CombinedScore "
        f"FROM c ORDER BY {EXPECTED_COMBINED} OFFSET 0 LIMIT 5"
    )
    assert query.parameters == [
        {"name": "@embedding0", "value": [1.0, 0.0]},
        {"name": "@embedding1", "value": [0.0, 1.0]},
    ]
    assert query.synthetic_columns == [
        "title_embedding_Score",
        "summary_embedding_Score",
        "CombinedScore",
    ]
    assert query.bare_alias == "c"


def test_order_by_repeats_combined_expression():
    spec = build_search_spec({TITLE: [1.0]}, {TITLE: 2}, max_results=1)

    query = build_query(spec)

    assert query.text.split(" ORDER BY ")[1].startswith(query.combined_expression)
    assert "ORDER BY CombinedScore" not in query.text
    assert query.combined_expression == "2.0 * VectorDistance(c.title_embedding, @embedding0)"


@pytest.mark.parametrize("max_results", [0, -1])
def test_no_limit_clause_when_unbounded(max_results: int):
    spec = build_search_spec({TITLE: [1.0]}, {TITLE: 1.0}, max_results=max_results)

    assert "LIMIT" not in build_query(spec).text
    assert build_query(spec).text.endswith(
        "ORDER BY 1.0 * VectorDistance(c.title_embedding, @embedding0)"
    )


def test_filter_and_select_fields():
    spec = build_search_spec(
        {TITLE: [1.0]},
        {TITLE: 1.0},
        select_fields=["c.incident_id", "c.title"],
        filter="c.severity <= 2",
        max_results=3,
    )

    query = build_query(spec)

    assert query.text.startswith("SELECT c.incident_id, c.title, VectorDistance(")
    assert " FROM c WHERE c.severity <= 2 ORDER BY " in query.text
    assert query.bare_alias is None


@pytest.mark.parametrize(
    "embeddings, weights",
    [
        ({}, {}),
        ({TITLE: [1.0]}, {SUMMARY: 1.0}),
        ({TITLE: [1.0], SUMMARY: [1.0]}, {TITLE: 1.0}),
        ({TITLE: []}, {TITLE: 1.0}),
        ({TITLE: [1.0]}, {TITLE: -0.1}),
        ({TITLE: [1.0]}, {TITLE: math.nan}),
        ({TITLE: [1.0]}, {TITLE: math.inf}),
        ({"": [1.0]}, {"": 1.0}),
    ],
)
async def test_invalid_input_fails_before_store_call(
    builder: MultiVectorQueryBuilder[Incident],
    store: InMemoryVectorStore,
    embeddings,
    weights,
):
    with pytest.raises(ValidationError):
        await builder.search("incidents", embeddings, weights)

    assert store.queries == []


async def test_empty_container_name_is_rejected(
    builder: MultiVectorQueryBuilder[Incident], store: InMemoryVectorStore
):
    with pytest.raises(ValidationError):
        await builder.search("", {TITLE: [1.0]}, {TITLE: 1.0})

    assert store.queries == []


async def test_weighted_search_orders_by_combined_distance(
    builder: MultiVectorQueryBuilder[Incident], store: InMemoryVectorStore
):
    _seed(
        store,
        [
            _document("A", [1.0, 0.0, 0.0], [1.0, 0.0, 0.0]),
            _document("B", [0.0, 1.0, 0.0], [1.0, 0.0, 0.0]),
            _document("C", [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]),
        ],
    )

    results = await builder.search(
        "incidents",
        {TITLE: [1.0, 0.0, 0.0], SUMMARY: [1.0, 0.0, 0.0]},
        {TITLE: 0.7, SUMMARY: 0.3},
        max_results=2,
    )

    assert [r.item.incident_id for r in results] == ["A", "C"]
    assert results[0].score == pytest.approx(0.0)
    assert results[1].score == pytest.approx(0.3)
    assert results[0].item.title == "title A"
    assert results[0].item.title_embedding == [1.0, 0.0, 0.0]


async def test_results_follow_store_order_across_pages(
    builder: MultiVectorQueryBuilder[Incident], store: InMemoryVectorStore
):
    # Deliberately not sorted: the builder must not reorder
    store.canned_pages = [
        [{"c": {"incident_id": "X"}, "CombinedScore": 0.9}],
        [
            {"c": {"incident_id": "Y"}, "CombinedScore": 0.1},
            {"c": {"incident_id": "Z"}, "CombinedScore": 0.5},
        ],
    ]

    results = await builder.search("incidents", {TITLE: [1.0]}, {TITLE: 1.0})

    assert [r.item.incident_id for r in results] == ["X", "Y", "Z"]
    assert [r.score for r in results] == [0.9, 0.1, 0.5]


async def test_unprojectable_rows_are_skipped(
    builder: MultiVectorQueryBuilder[Incident], store: InMemoryVectorStore
):
    store.canned_pages = [
        [
            {"c": {"incident_id": "ok-1"}, "CombinedScore": 0.1},
            {"c": {"incident_id": "no-score"}},
            {"c": {"title": "no id"}, "CombinedScore": 0.2},
            "not a row",
            {"c": {"incident_id": "bad-severity", "severity": "high"}, "CombinedScore": 0.3},
            {
                "c": {"incident_id": "huge-severity", "severity": "1.0e999"},
                "CombinedScore": 0.35,
            },
            {"c": "not an object", "CombinedScore": 0.4},
            {"c": {"incident_id": "ok-2"}, "CombinedScore": "0.5"},
        ]
    ]

    results = await builder.search("incidents", {TITLE: [1.0]}, {TITLE: 1.0})

    assert [r.item.incident_id for r in results] == ["ok-1", "ok-2"]
    assert results[1].score == 0.5


async def test_store_errors_propagate(builder: MultiVectorQueryBuilder[Incident]):
    class FailingStore(InMemoryVectorStore):
        async def query_pages(self, *args, **kwargs):
            raise StoreError("query failed")
            yield  # pragma: no cover

    builder.store = FailingStore()

    with pytest.raises(StoreError):
        await builder.search("incidents", {TITLE: [1.0]}, {TITLE: 1.0})
