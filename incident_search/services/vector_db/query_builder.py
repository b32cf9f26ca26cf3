"""Weighted multi-vector similarity search."""

from dataclasses import dataclass
from typing import Dict, Generic, List, Mapping, Optional, Sequence, TypeVar

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from incident_search.exceptions import ItemProjectionError, ValidationError
from incident_search.services.vector_db.base import QueryParameter, VectorStore
from incident_search.services.vector_db.projector import ResultProjector
from incident_search.services.vector_db.types import (
    COMBINED_SCORE_COLUMN,
    SearchResult,
    SearchSpec,
    score_column,
)

T = TypeVar("T")

# Alias of the whole document in FROM/SELECT
DOCUMENT_ALIAS = "c"


@dataclass(frozen=True)
class MultiVectorQuery:
    """Query text, bound parameters and the columns added for scoring."""

    text: str
    parameters: List[QueryParameter]
    combined_expression: str
    synthetic_columns: List[str]
    bare_alias: Optional[str]


def _check_container(container_name: str) -> None:
    if not container_name:
        raise ValidationError("Container name cannot be null or empty")


def build_search_spec(
    embeddings_by_field: Mapping[str, Sequence[float]],
    weights_by_field: Mapping[str, float],
    select_fields: Optional[Sequence[str]] = None,
    filter: Optional[str] = None,
    max_results: int = 10,
) -> SearchSpec:
    """
    Validate raw search arguments into a :class:`SearchSpec`.

    :raises ValidationError: if fields and weights differ, a vector is
        empty or a weight is negative
    """
    try:
        return SearchSpec(
            embeddings={
                name: list(vector)
                for name, vector in (embeddings_by_field or {}).items()
            },
            weights=dict(weights_by_field or {}),
            select_fields=list(select_fields) if select_fields else None,
            filter=filter,
            max_results=max_results,
        )
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid search parameters: {e}") from e


def _format_weight(weight: float) -> str:
    # repr keeps full precision and never switches to locale formats
    return repr(float(weight))


def build_query(spec: SearchSpec) -> MultiVectorQuery:
    """
    Build the weighted multi-vector query for a validated spec.

    Fields are iterated once, in the order of ``spec.embeddings``; that order
    fixes both the expression text and the ``@embedding<i>`` parameters.
    The ORDER BY clause repeats the combined expression because the store
    cannot order by a computed alias.
    """
    field_order = list(spec.embeddings)

    distances: Dict[str, str] = {}
    parameters: List[QueryParameter] = []
    for index, field_name in enumerate(field_order):
        param_name = f"@embedding{index}"
        distances[field_name] = (
            f"VectorDistance({DOCUMENT_ALIAS}.{field_name}, {param_name})"
        )
        parameters.append({"name": param_name, "value": spec.embeddings[field_name]})

    combined_expression = " + ".join(
        f"{_format_weight(spec.weights[field_name])} * {distances[field_name]}"
        for field_name in field_order
    )

    score_expressions = [
        f"{distances[field_name]} AS {score_column(field_name)}"
        for field_name in field_order
    ]
    score_expressions.append(f"{combined_expression} AS {COMBINED_SCORE_COLUMN}")

    if spec.select_fields:
        select_clause = ", ".join(spec.select_fields)
        bare_alias = None
    else:
        select_clause = DOCUMENT_ALIAS
        bare_alias = DOCUMENT_ALIAS

    text = (
        f"SELECT {select_clause}, {', '.join(score_expressions)} "
        f"FROM {DOCUMENT_ALIAS}"
    )
    if spec.filter:
        text = f"{text} WHERE {spec.filter}"
    text = f"{text} ORDER BY {combined_expression}"
    if spec.max_results > 0:
        text = f"{text} OFFSET 0 LIMIT {spec.max_results}"

    synthetic_columns = [score_column(field_name) for field_name in field_order]
    synthetic_columns.append(COMBINED_SCORE_COLUMN)

    return MultiVectorQuery(
        text=text,
        parameters=parameters,
        combined_expression=combined_expression,
        synthetic_columns=synthetic_columns,
        bare_alias=bare_alias,
    )


class MultiVectorQueryBuilder(Generic[T]):
    """Runs weighted multi-vector searches and returns typed results."""

    def __init__(self, store: VectorStore, projector: ResultProjector[T]):
        """
        :param store: vector store to query
        :param projector: turns raw rows into typed items
        """
        self.store = store
        self.projector = projector

    async def search(
        self,
        container_name: str,
        embeddings_by_field: Mapping[str, Sequence[float]],
        weights_by_field: Mapping[str, float],
        select_fields: Optional[Sequence[str]] = None,
        filter: Optional[str] = None,
        max_results: int = 10,
        database_name: Optional[str] = None,
    ) -> List[SearchResult[T]]:
        """
        Perform a weighted multi-vector similarity search.

        :param container_name: container to search in
        :param embeddings_by_field: vector field name to query embedding
        :param weights_by_field: vector field name to weight
        :param select_fields: explicit fields to select, whole document if None
        :param filter: optional WHERE condition over document fields
        :param max_results: page limit, ``<= 0`` means unbounded
        :param database_name: database override
        :returns: results in ascending combined distance, as ordered by the store
        :raises ValidationError: on malformed input, before any remote call
        :raises StoreError: if the query fails
        """
        spec = build_search_spec(
            embeddings_by_field,
            weights_by_field,
            select_fields=select_fields,
            filter=filter,
            max_results=max_results,
        )
        _check_container(container_name)
        return await self.run(container_name, spec, database_name=database_name)

    async def run(
        self,
        container_name: str,
        spec: SearchSpec,
        database_name: Optional[str] = None,
    ) -> List[SearchResult[T]]:
        """Execute a validated SearchSpec and project every row."""
        _check_container(container_name)
        query = build_query(spec)

        if spec.max_results <= 0:
            logger.warning(
                f"Multi-vector search on {container_name} has no result limit, "
                "the result set is unbounded"
            )
        logger.debug(f"[VECTOR_DB] Multi-vector query: {query.text}")

        results: List[SearchResult[T]] = []
        skipped = 0
        async for page in self.store.query_pages(
            container_name, query.text, query.parameters, database_name=database_name
        ):
            for row in page:
                try:
                    score, item = self.projector.project(
                        row, query.synthetic_columns, bare_alias=query.bare_alias
                    )
                except ItemProjectionError as e:
                    skipped += 1
                    logger.warning(f"Skipping search result row: {e}")
                    continue
                results.append(SearchResult(item=item, score=score))

        logger.info(
            f"Multi-vector search on {container_name} returned {len(results)} results"
            + (f", skipped {skipped} rows" if skipped else "")
        )
        return results
