"""
Storage layer: knowledge graph, passage vectors and the retrieval pipeline.
"""

from immirag.storage.errors import RetrievalError, VectorSearchError
from immirag.storage.retriever import (
    Entity,
    Passage,
    RelatedEntity,
    Relationship,
    RetrievalOrchestrator,
    RetrievalQuery,
    RetrievalResult,
    RetrieverConfig,
    build_context,
)
from immirag.storage.graph import FalkorDBClient, FalkorDBConfig, KnowledgeGraphStore
from immirag.storage.vectors import EmbeddingService, QdrantConfig, VectorSearch

__all__ = [
    "RetrievalError",
    "VectorSearchError",
    "Entity",
    "Passage",
    "RelatedEntity",
    "Relationship",
    "RetrievalOrchestrator",
    "RetrievalQuery",
    "RetrievalResult",
    "RetrieverConfig",
    "build_context",
    "FalkorDBClient",
    "FalkorDBConfig",
    "KnowledgeGraphStore",
    "EmbeddingService",
    "QdrantConfig",
    "VectorSearch",
]
