"""Shared types for vector database module."""

import math
from collections import OrderedDict
from typing import Any, Dict, Generic, Iterator, List, Mapping, MutableMapping, Optional, TypeVar

from pydantic import BaseModel, Field, model_validator

T = TypeVar("T")

COMBINED_SCORE_COLUMN = "CombinedScore"
SCORE_COLUMN_SUFFIX = "_Score"


def score_column(field_name: str) -> str:
    """Alias of the per-field distance column."""
    return f"{field_name}{SCORE_COLUMN_SUFFIX}"


class VectorFieldSpec(BaseModel):
    """Vector index declaration for one embedding field of a container."""

    path: str
    dimensions: int = Field(..., gt=0)
    data_type: str = "float32"
    distance_function: str = "cosine"
    index_type: str = "diskANN"


class SearchSpec(BaseModel):
    """
    Weighted multi-vector search request.

    The vector and weight mappings must name exactly the same fields.
    ``max_results <= 0`` means no limit.
    """

    embeddings: Dict[str, List[float]]
    weights: Dict[str, float]
    filter: Optional[str] = None
    select_fields: Optional[List[str]] = None
    max_results: int = 10

    @model_validator(mode="after")
    def check_fields_match(self) -> "SearchSpec":
        if not self.embeddings:
            raise ValueError("At least one embedding field is required")
        if set(self.embeddings) != set(self.weights):
            raise ValueError(
                "Embedding fields and weight fields differ: "
                f"{sorted(self.embeddings)} != {sorted(self.weights)}"
            )
        for field_name, vector in self.embeddings.items():
            if not field_name:
                raise ValueError("Vector field name cannot be empty")
            if not vector:
                raise ValueError(f"Embedding vector for field '{field_name}' is empty")
            weight = self.weights[field_name]
            if not math.isfinite(weight) or weight < 0:
                raise ValueError(
                    f"Weight for field '{field_name}' must be finite and >= 0, got {weight}"
                )
        return self


class SearchResult(BaseModel, Generic[T]):
    """Typed item with its combined distance (lower is more similar)."""

    item: T
    score: float


class RowMap(MutableMapping):
    """
    Ordered key/value view of one raw query result row.

    Keeps the column order of the store response and adds the few
    structural edits result projection needs.
    """

    def __init__(self, data: Optional[Mapping[str, Any]] = None):
        self._data: "OrderedDict[str, Any]" = OrderedDict(data or {})

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._data[key] = value

    def __delitem__(self, key: str) -> None:
        del self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"RowMap({dict(self._data)!r})"

    def remove_all(self, keys) -> None:
        """Remove every listed key that is present."""
        for key in keys:
            self._data.pop(key, None)

    def rename(self, old: str, new: str) -> None:
        """Rename a key in place, keeping its position."""
        if old not in self._data:
            raise KeyError(old)
        self._data = OrderedDict(
            (new if key == old else key, value) for key, value in self._data.items()
        )

    def unwrap(self, alias: str) -> "RowMap":
        """
        Replace the row with the mapping nested under ``alias``.

        Columns next to the alias are dropped.

        :param alias: key of the nested document
        :returns: self, for chaining
        :raises TypeError: if the value under ``alias`` is not a mapping
        """
        nested = self._data[alias]
        if not isinstance(nested, Mapping):
            raise TypeError(
                f"Cannot unwrap '{alias}': expected an object, got {type(nested).__name__}"
            )
        self._data = OrderedDict(nested)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._data)
