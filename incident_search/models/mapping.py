"""Explicit column to attribute mapping tables."""

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, Generic, List, Mapping, Tuple, Type, TypeVar

from pydantic import ValidationError as PydanticValidationError

from incident_search.exceptions import ItemProjectionError

T = TypeVar("T")


def to_str(value: Any) -> str:
    """Convert scalars to text, dates to ISO 8601."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def to_int(value: Any) -> int:
    """Convert numbers and numeric strings to int."""
    if isinstance(value, bool):
        raise ValueError("boolean is not a valid integer value")
    if isinstance(value, str):
        value = value.strip()
        if "." not in value and "e" not in value.lower():
            return int(value)
        value = float(value)
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"non-finite value {value!r} is not a valid integer")
    return int(value)


def to_vector(value: Any) -> List[float]:
    """Convert a JSON array of numbers to a list of floats."""
    if isinstance(value, (str, bytes)) or not hasattr(value, "__iter__"):
        raise ValueError(f"expected a numeric array, got {type(value).__name__}")
    return [float(x) for x in value]


def _identity(value: Any) -> Any:
    return value


@dataclass(frozen=True)
class FieldSpec:
    """One column of a mapping table."""

    column: str
    attribute: str
    required: bool = False
    convert: Callable[[Any], Any] = _identity


@dataclass(frozen=True)
class FieldMapping(Generic[T]):
    """
    Column to attribute table declared once per target type.

    Columns missing from the table are ignored. A required column that is
    absent (or null) in the row makes :meth:`build` fail.
    """

    target: Type[T]
    fields: Tuple[FieldSpec, ...]

    @property
    def columns(self) -> List[str]:
        """Columns known to this mapping, in declaration order."""
        return [spec.column for spec in self.fields]

    def build(self, row: Mapping[str, Any]) -> T:
        """
        Build an instance of the target type from a row.

        :param row: column name to value mapping
        :returns: instance of the target type
        :raises ItemProjectionError: if a required column is missing or a
            value cannot be converted
        """
        kwargs: Dict[str, Any] = {}
        for spec in self.fields:
            value = row.get(spec.column)
            if value is None:
                if spec.required:
                    raise ItemProjectionError(
                        f"Required field '{spec.column}' missing for {self.target.__name__}"
                    )
                continue
            try:
                kwargs[spec.attribute] = spec.convert(value)
            except (TypeError, ValueError, OverflowError) as e:
                raise ItemProjectionError(
                    f"Cannot convert field '{spec.column}' for {self.target.__name__}: {e}"
                ) from e

        try:
            return self.target(**kwargs)
        except (PydanticValidationError, TypeError, ValueError) as e:
            raise ItemProjectionError(
                f"Cannot build {self.target.__name__} from row: {e}"
            ) from e
