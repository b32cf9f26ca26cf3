"""Turn raw multi-vector query rows into typed results."""

from typing import Any, Generic, Iterable, Mapping, Optional, Tuple, TypeVar

from incident_search.exceptions import ItemProjectionError
from incident_search.models.mapping import FieldMapping
from incident_search.services.vector_db.types import COMBINED_SCORE_COLUMN, RowMap

T = TypeVar("T")


class ResultProjector(Generic[T]):
    """Strips scoring columns from a row and builds the target item."""

    def __init__(self, mapping: FieldMapping[T]):
        """
        :param mapping: field table of the target type
        """
        self.mapping = mapping

    def project(
        self,
        raw_row: Mapping[str, Any],
        synthetic_columns: Iterable[str],
        bare_alias: Optional[str] = None,
    ) -> Tuple[float, T]:
        """
        Project one raw row.

        :param raw_row: row as returned by the store
        :param synthetic_columns: score columns added by the query, including
            ``CombinedScore``
        :param bare_alias: alias the whole document was selected under, if any
        :returns: combined score and typed item
        :raises ItemProjectionError: if the row cannot be projected
        """
        if not isinstance(raw_row, Mapping):
            raise ItemProjectionError(
                f"Expected an object row, got {type(raw_row).__name__}"
            )
        row = RowMap(raw_row)

        if COMBINED_SCORE_COLUMN not in row:
            raise ItemProjectionError(f"Row has no {COMBINED_SCORE_COLUMN} column")
        try:
            score = float(row[COMBINED_SCORE_COLUMN])
        except (TypeError, ValueError) as e:
            raise ItemProjectionError(
                f"Invalid {COMBINED_SCORE_COLUMN} value {row[COMBINED_SCORE_COLUMN]!r}"
            ) from e

        row.remove_all(synthetic_columns)
        row.remove_all([COMBINED_SCORE_COLUMN])

        if bare_alias and bare_alias in row:
            try:
                row.unwrap(bare_alias)
            except TypeError as e:
                raise ItemProjectionError(str(e)) from e

        return score, self.mapping.build(row)
