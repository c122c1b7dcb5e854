"""
Vector Search
=============

Similarity search over passage embeddings stored in Qdrant.

Payload written by ingestion for each point:
    document_id, text, chunk_index, language, source_url, entities, key_phrases

Failures are never masked here: a caller that gets no passages because the
index is down must know it, instead of prompting as if the knowledge base
had nothing relevant.
"""

from typing import Any, List, Optional

import structlog
from qdrant_client import AsyncQdrantClient
from qdrant_client.models import FieldCondition, Filter, MatchValue

from immirag.storage.errors import VectorSearchError
from immirag.storage.retriever.models import Passage
from immirag.storage.vectors.config import QdrantConfig
from immirag.storage.vectors.embeddings import BaseEmbeddingProvider

log = structlog.get_logger()


class VectorSearch:
    """
    Read-only passage search.

    Example:
        >>> search = VectorSearch.from_config(QdrantConfig(), embedding_provider=service)
        >>> passages = await search.search_text(
        ...     "Express Entry requirements", limit=5, threshold=0.5, language="en"
        ... )
    """

    def __init__(
        self,
        client: AsyncQdrantClient,
        collection_name: str,
        embedding_provider: Optional[BaseEmbeddingProvider] = None,
    ):
        self.client = client
        self.collection_name = collection_name
        self.embedding_provider = embedding_provider

    @classmethod
    def from_config(
        cls,
        config: QdrantConfig,
        embedding_provider: Optional[BaseEmbeddingProvider] = None,
    ) -> "VectorSearch":
        client = AsyncQdrantClient(
            host=config.host,
            port=config.port,
            api_key=config.api_key,
            timeout=max(1, config.timeout_ms // 1000),
        )
        log.info(
            "vector_search_initialized",
            host=config.host,
            port=config.port,
            collection=config.collection_name,
        )
        return cls(client, config.collection_name, embedding_provider)

    async def search(
        self,
        query_vector: List[float],
        limit: int,
        threshold: float,
        language: Optional[str] = None,
    ) -> List[Passage]:
        """
        Nearest passages to a query vector.

        Args:
            query_vector: Query embedding
            limit: Maximum passages
            threshold: Minimum similarity (inclusive)
            language: Optional language tag filter

        Returns:
            Passages by descending similarity, all >= threshold, len <= limit

        Raises:
            VectorSearchError: The index is unreachable or the query failed
        """
        query_filter = None
        if language:
            query_filter = Filter(
                must=[FieldCondition(key="language", match=MatchValue(value=language))]
            )

        try:
            response = await self.client.query_points(
                collection_name=self.collection_name,
                query=query_vector,
                query_filter=query_filter,
                limit=limit,
                score_threshold=threshold,
                with_payload=True,
            )
        except Exception as e:
            log.error("vector_search_failed", collection=self.collection_name, error=str(e))
            raise VectorSearchError(f"Vector search failed: {e}") from e

        passages = [
            self._passage_from_point(point)
            for point in response.points
            if point.score >= threshold
        ]
        passages.sort(key=lambda p: p.similarity, reverse=True)
        passages = passages[:limit]

        log.debug(
            "vector_search",
            limit=limit,
            threshold=threshold,
            language=language,
            hits=len(passages),
        )
        return passages

    async def search_text(
        self,
        text: str,
        limit: int,
        threshold: float,
        language: Optional[str] = None,
    ) -> List[Passage]:
        """Embed `text` with the configured provider, then search."""
        if self.embedding_provider is None:
            raise VectorSearchError("No embedding provider configured for text search")

        try:
            query_vector = await self.embedding_provider.embed(text)
        except Exception as e:
            log.error("query_embedding_failed", error=str(e))
            raise VectorSearchError(f"Query embedding failed: {e}") from e

        return await self.search(query_vector, limit=limit, threshold=threshold, language=language)

    async def health_check(self) -> bool:
        try:
            return await self.client.collection_exists(self.collection_name)
        except Exception as e:
            log.error("vector_health_check_failed", collection=self.collection_name, error=str(e))
            return False

    async def close(self):
        await self.client.close()

    @staticmethod
    def _passage_from_point(point: Any) -> Passage:
        payload = point.payload or {}
        return Passage(
            id=str(point.id),
            document_id=str(payload.get("document_id", "")),
            text=payload.get("text", ""),
            similarity=float(point.score),
            chunk_index=int(payload.get("chunk_index", 0)),
            language=payload.get("language"),
            source_url=payload.get("source_url") or None,
            entities=payload.get("entities"),
            key_phrases=payload.get("key_phrases"),
        )
