"""
Universe store.

Per-universe persistent vector indexes, the registry that owns their
handles, the embedding providers and the orchestrator tying them together.
"""

from .base import IndexDestroyedError, IndexState, Match, ThingInput, VectorIndex
from .embeddings import (
    EmbeddingProvider,
    OpenAIEmbeddingProvider,
    VoyageEmbeddingProvider,
    create_embedding_provider,
)
from .chroma_index import ChromaVectorIndex
from .registry import UniverseRegistry
from .orchestrator import StoreOrchestrator, create_orchestrator

__all__ = [
    "IndexDestroyedError",
    "IndexState",
    "Match",
    "ThingInput",
    "VectorIndex",
    "EmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "VoyageEmbeddingProvider",
    "create_embedding_provider",
    "ChromaVectorIndex",
    "UniverseRegistry",
    "StoreOrchestrator",
    "create_orchestrator",
]
