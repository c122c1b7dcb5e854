"""
Embedding Providers
===================

Text -> fixed-length vector, the boundary to the embedding model.

The retrieval core only depends on BaseEmbeddingProvider. EmbeddingService is
the default implementation: a lazily loaded sentence-transformers model,
multilingual E5 by default so English and Arabic queries share one space.

E5 models require prefixes:
- Query: "query: <text>"
- Passage: "passage: <text>"

Reference: https://huggingface.co/intfloat/multilingual-e5-base
"""

import asyncio
import os
from abc import ABC, abstractmethod
from threading import Lock
from typing import Any, List, Optional

import structlog

log = structlog.get_logger()


class BaseEmbeddingProvider(ABC):
    """Contract consumed by vector search."""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Embed a query text."""

    @abstractmethod
    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Embed several texts, preserving order."""


class EmbeddingService(BaseEmbeddingProvider):
    """
    Singleton sentence-transformers embedding service.

    Usage:
        service = EmbeddingService.get_instance()
        vector = await service.embed("Express Entry requirements")
        vectors = await service.embed_batch(["text1", "text2"], is_query=False)
    """

    _instance: Optional["EmbeddingService"] = None
    _lock: Lock = Lock()

    def __init__(
        self,
        model_name: Optional[str] = None,
        device: Optional[str] = None,
        batch_size: int = 32,
        normalize_embeddings: bool = True
    ):
        """
        Args:
            model_name: Sentence-transformers model
                        (default: EMBEDDING_MODEL env var or multilingual-e5-base)
            device: 'cpu', 'cuda', or None to auto-detect on first load
            batch_size: Batch size for encoding
            normalize_embeddings: Normalize vectors (cosine similarity)
        """
        self.model_name = model_name or os.getenv("EMBEDDING_MODEL", "intfloat/multilingual-e5-base")
        self.device = device or os.getenv("EMBEDDING_DEVICE") or None
        self.batch_size = int(os.getenv("EMBEDDING_BATCH_SIZE", str(batch_size)))
        self.normalize_embeddings = normalize_embeddings

        # Loaded on first use
        self._model: Any = None

        log.info(
            "embedding_service_configured",
            model=self.model_name,
            device=self.device or "auto",
            batch_size=self.batch_size,
        )

    @classmethod
    def get_instance(cls, **kwargs) -> "EmbeddingService":
        """Thread-safe singleton; kwargs only apply to the first call."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls(**kwargs)
        return cls._instance

    def _load_model(self) -> Any:
        if self._model is None:
            with self._lock:
                if self._model is None:
                    from sentence_transformers import SentenceTransformer

                    if self.device is None:
                        import torch
                        self.device = "cuda" if torch.cuda.is_available() else "cpu"

                    log.info("embedding_model_loading", model=self.model_name, device=self.device)
                    try:
                        self._model = SentenceTransformer(self.model_name, device=self.device)
                    except Exception as e:
                        log.error("embedding_model_load_failed", model=self.model_name, error=str(e))
                        raise RuntimeError(f"Failed to load embedding model: {e}") from e

        return self._model

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    @property
    def embedding_dimension(self) -> int:
        return self._load_model().get_sentence_embedding_dimension()

    def encode_query(self, text: str) -> List[float]:
        """Encode a query with the E5 "query: " prefix."""
        model = self._load_model()
        embedding = model.encode(
            f"query: {text}",
            normalize_embeddings=self.normalize_embeddings,
            convert_to_numpy=True
        )
        return embedding.tolist()

    def encode_batch(self, texts: List[str], is_query: bool = False) -> List[List[float]]:
        """Encode texts with the query or passage prefix."""
        if not texts:
            return []

        model = self._load_model()
        prefix = "query: " if is_query else "passage: "
        embeddings = model.encode(
            [f"{prefix}{text}" for text in texts],
            batch_size=self.batch_size,
            normalize_embeddings=self.normalize_embeddings,
            convert_to_numpy=True
        )
        return embeddings.tolist()

    async def embed(self, text: str) -> List[float]:
        """Runs encode_query in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.encode_query, text)

    async def embed_batch(self, texts: List[str], is_query: bool = False) -> List[List[float]]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: self.encode_batch(texts, is_query))

    def __repr__(self) -> str:
        return (
            f"EmbeddingService("
            f"model={self.model_name}, "
            f"device={self.device}, "
            f"loaded={self.is_loaded})"
        )
