"""Approximate PCA used to compress embeddings before storage."""

from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
from loguru import logger

from incident_search.exceptions import ValidationError

# Fixed number of power iterations per component
POWER_ITERATIONS = 100


@dataclass(frozen=True)
class PcaProjection:
    """Mean and principal components learned from a set of vectors."""

    mean: np.ndarray
    components: np.ndarray  # shape (k, d), one unit vector per row

    @property
    def input_dimension(self) -> int:
        return int(self.mean.shape[0])

    @property
    def output_dimension(self) -> int:
        return int(self.components.shape[0])

    def transform(self, vectors: Sequence[Sequence[float]]) -> List[List[float]]:
        """
        Project vectors onto the learned components.

        :param vectors: vectors of length ``input_dimension``
        :returns: reduced vectors, same order
        :raises ValidationError: if a vector has the wrong length
        """
        if not vectors:
            return []
        data = _as_matrix(vectors)
        if data.shape[1] != self.input_dimension:
            raise ValidationError(
                f"Expected vectors of dimension {self.input_dimension}, got {data.shape[1]}"
            )
        reduced = (data - self.mean) @ self.components.T
        return reduced.tolist()


def _as_matrix(vectors: Sequence[Sequence[float]]) -> np.ndarray:
    lengths = {len(v) for v in vectors}
    if len(lengths) > 1:
        raise ValidationError(
            f"All vectors must have the same dimension, got {sorted(lengths)}"
        )
    return np.asarray(vectors, dtype=np.float64)


def _power_iteration(matrix: np.ndarray, seed: int) -> np.ndarray:
    """
    Approximate the dominant eigenvector of a symmetric matrix.

    The start vector is seeded from ``seed`` so that runs are reproducible.
    A matrix that maps the iterate to zero yields the zero vector.
    """
    rng = np.random.default_rng(seed)
    vector = rng.random(matrix.shape[0])
    vector /= np.linalg.norm(vector)

    for _ in range(POWER_ITERATIONS):
        product = matrix @ vector
        norm = np.linalg.norm(product)
        if norm == 0.0:
            return np.zeros_like(vector)
        vector = product / norm

    return vector


class DimensionReducer:
    """
    Compress vectors with fixed-iteration power-iteration PCA.

    This is deterministic and fast, but components are not guaranteed to
    match an exact eigendecomposition on ill-conditioned covariance matrices.
    Deflation only approximately orthogonalizes successive components.
    """

    def should_reduce(self, count: int, dimension: int, target_dimension: int) -> bool:
        """Reduction runs only when it lowers the dimension and has enough samples."""
        return count >= target_dimension and dimension > target_dimension

    def fit(
        self, vectors: Sequence[Sequence[float]], target_dimension: int
    ) -> Optional[PcaProjection]:
        """
        Learn a projection to ``target_dimension`` components.

        :param vectors: equal-length vectors
        :param target_dimension: number of components to keep
        :returns: the projection, or None when reduction does not apply
        :raises ValidationError: on a non-positive target or ragged input
        """
        if target_dimension <= 0:
            raise ValidationError(
                f"Target dimension must be positive, got {target_dimension}"
            )
        if not vectors:
            return None

        data = _as_matrix(vectors)
        count, dimension = data.shape
        if not self.should_reduce(count, dimension, target_dimension):
            logger.debug(
                f"Skipping reduction: {count} vectors of dimension {dimension}, "
                f"target {target_dimension}"
            )
            return None

        mean = data.mean(axis=0)
        centered = data - mean
        # count >= target_dimension >= 1; a single sample has zero covariance
        covariance = centered.T @ centered / max(count - 1, 1)

        components = np.empty((target_dimension, dimension), dtype=np.float64)
        for index in range(target_dimension):
            component = _power_iteration(covariance, seed=index)
            components[index] = component
            covariance = covariance - np.outer(component, component)

        logger.debug(
            f"Fitted PCA: {count} vectors, {dimension} -> {target_dimension} dimensions"
        )
        return PcaProjection(mean=mean, components=components)

    def reduce(
        self, vectors: Sequence[Sequence[float]], target_dimension: int
    ) -> List[List[float]]:
        """
        Reduce vectors to ``target_dimension`` elements each.

        When there are fewer vectors than ``target_dimension`` or the vectors
        are already at most ``target_dimension`` long the input is returned
        unchanged.

        :param vectors: equal-length vectors
        :param target_dimension: number of components to keep
        :returns: one vector per input vector, same order
        """
        projection = self.fit(vectors, target_dimension)
        if projection is None:
            return vectors
        return projection.transform(vectors)
