"""
Vector storage: embedding providers and Qdrant passage search.

EmbeddingService loads sentence-transformers lazily, so importing this
package does not require the `embeddings` extra.
"""

from immirag.storage.vectors.config import QdrantConfig
from immirag.storage.vectors.embeddings import BaseEmbeddingProvider, EmbeddingService
from immirag.storage.vectors.search import VectorSearch

__all__ = [
    "BaseEmbeddingProvider",
    "EmbeddingService",
    "QdrantConfig",
    "VectorSearch",
]
