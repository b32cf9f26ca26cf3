"""Shared fixtures: in-memory vector store and embedding provider."""

import hashlib
import re
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pytest

from incident_search.exceptions import ProviderError, StoreError
from incident_search.models.incidents import Incident
from incident_search.services.ai.embedding_provider import EmbeddingProvider
from incident_search.services.vector_db.base import QueryParameter, VectorStore
from incident_search.services.vector_db.types import VectorFieldSpec

_TERM = re.compile(r"([0-9.eE+-]+) \* VectorDistance\(c\.(\w+), (@embedding\d+)\)")
_LIMIT = re.compile(r"OFFSET 0 LIMIT (\d+)$")


def cosine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    return float(1.0 - a @ b / (np.linalg.norm(a) * np.linalg.norm(b)))


class InMemoryVectorStore(VectorStore):
    """
    Store double that evaluates weighted VectorDistance queries.

    Only the ORDER BY expression and the LIMIT clause are interpreted; rows
    come back shaped like Cosmos rows for ``SELECT c, ...``.
    """

    def __init__(self, page_size: int = 2):
        self.page_size = page_size
        self.containers: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.container_specs: Dict[str, List[VectorFieldSpec]] = {}
        self.ensure_calls = 0
        self.upsert_calls = 0
        self.queries: List[str] = []
        self.parameters: List[List[QueryParameter]] = []
        self.fail_upsert = False
        self.canned_pages: Optional[List[List[Dict[str, Any]]]] = None

    async def ensure_container_exists(
        self,
        container_name: str,
        partition_key_path: str,
        vector_fields: Sequence[VectorFieldSpec],
        database_name: Optional[str] = None,
    ) -> None:
        self.ensure_calls += 1
        self.containers.setdefault(container_name, {})
        self.container_specs[container_name] = list(vector_fields)

    async def upsert(
        self,
        container_name: str,
        items_by_key: Mapping[str, Dict[str, Any]],
        database_name: Optional[str] = None,
    ) -> int:
        self.upsert_calls += 1
        if self.fail_upsert:
            raise StoreError("upsert rejected")
        container = self.containers.setdefault(container_name, {})
        for key, document in items_by_key.items():
            container[key] = dict(document)
        return len(items_by_key)

    def _evaluate(self, container_name: str, query: str, params: Dict[str, Any]):
        order_by = query.split(" ORDER BY ", 1)[1]
        terms = [
            (float(weight), field_name, params[param])
            for weight, field_name, param in _TERM.findall(order_by)
        ]
        rows = []
        for document in self.containers.get(container_name, {}).values():
            row: Dict[str, Any] = {"c": dict(document)}
            combined = 0.0
            for weight, field_name, vector in terms:
                distance = cosine_distance(document[field_name], vector)
                row[f"{field_name}_Score"] = distance
                combined += weight * distance
            row["CombinedScore"] = combined
            rows.append(row)
        rows.sort(key=lambda r: r["CombinedScore"])
        limit = _LIMIT.search(query)
        if limit:
            rows = rows[: int(limit.group(1))]
        return rows

    async def query_pages(
        self,
        container_name: str,
        query: str,
        parameters: Sequence[QueryParameter],
        database_name: Optional[str] = None,
    ) -> AsyncIterator[List[Dict[str, Any]]]:
        self.queries.append(query)
        self.parameters.append(list(parameters))
        if self.canned_pages is not None:
            for page in self.canned_pages:
                yield page
            return

        rows = self._evaluate(
            container_name, query, {p["name"]: p["value"] for p in parameters}
        )
        for start in range(0, len(rows), self.page_size):
            yield rows[start : start + self.page_size]


def text_vector(text: str, dimension: int) -> List[float]:
    """Deterministic pseudo embedding of a text."""
    seed = int(hashlib.md5(text.encode()).hexdigest()[:8], 16)
    return np.random.default_rng(seed).normal(size=dimension).tolist()


class FakeEmbeddingProvider(EmbeddingProvider):
    """Provider double recording every bulk request."""

    def __init__(self, dimension: int = 8):
        self.dimension = dimension
        self.requests: List[List[str]] = []
        self.vectors: Dict[str, List[float]] = {}
        # text -> number of vectors to drop from the end of that request
        self.short_by: Dict[str, int] = {}
        self.fail_on: Optional[str] = None

    async def embed_many(self, texts: Sequence[str]) -> List[List[float]]:
        texts = list(texts)
        self.requests.append(texts)
        if self.fail_on is not None and self.fail_on in texts:
            raise ProviderError(f"provider failed on {self.fail_on!r}")
        vectors = [
            self.vectors.get(text) or text_vector(text, self.dimension)
            for text in texts
        ]
        drop = max((self.short_by.get(text, 0) for text in texts), default=0)
        return vectors[: len(vectors) - drop]


def make_incident(index: int, **overrides) -> Incident:
    data = {
        "incident_id": f"INC-{index}",
        "severity": 2,
        "status": "Active",
        "title": f"Database connection failure {index}",
        "summary": f"Primary database rejected connections, instance {index}",
    }
    data.update(overrides)
    return Incident(**data)


@pytest.fixture
def store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def incidents() -> List[Incident]:
    return [make_incident(i) for i in range(7)]
