"""Embedding generation and dimension reduction."""

from .dimension_reducer import DimensionReducer, PcaProjection
from .embedding_provider import EmbeddingProvider, OpenAIEmbeddingProvider

__all__ = [
    "DimensionReducer",
    "EmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "PcaProjection",
]
