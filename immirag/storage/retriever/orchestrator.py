"""
Retrieval Orchestrator
======================

Turns a user query into a ranked RetrievalResult.

Pipeline (linear, no retries across stages):

    Plan:    should_rerank = query.enable_reranking AND reranker configured
             rerank   -> limit = chunk_limit * oversample, permissive threshold
             no rerank-> limit = chunk_limit, strict threshold
                       ↓
    Stage 1: Vector Search  ‖  Entity Search      (both awaited)
                       ↓
    Rerank:  candidates -> reranker(top_n = chunk_limit)
             fail/timeout -> vector order truncated to chunk_limit
                       ↓
    Stage 2: relationship expansion of the top 3 entities (concurrent)
                       ↓
             RetrievalResult

Failure policy:
- Vector search (primary channel): errors and timeouts raise VectorSearchError.
- Entity search, expansion, reranking (enhancements): logged, degraded result.
"""

import asyncio
import time
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

import structlog

from immirag.storage.errors import VectorSearchError
from immirag.storage.retriever.models import (
    Entity,
    Passage,
    RelatedEntity,
    RetrievalQuery,
    RetrievalResult,
    RetrieverConfig,
)
from immirag.storage.retriever.reranker import BaseReranker, RerankedItem, RerankOutcome

if TYPE_CHECKING:
    from immirag.storage.graph.knowledge import KnowledgeGraphStore
    from immirag.storage.vectors.search import VectorSearch

log = structlog.get_logger()


@dataclass(frozen=True)
class RetrievalPlan:
    """Decisions taken before any provider call."""
    should_rerank: bool
    search_limit: int
    threshold: float
    oversample_factor: int


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


class RetrievalOrchestrator:
    """
    Composes vector search, entity search, reranking and relationship
    expansion into one query answer.

    Example:
        >>> orchestrator = RetrievalOrchestrator(
        ...     vector_search=vector_search,
        ...     graph_store=graph_store,
        ...     reranker=CohereReranker(),
        ... )
        >>> result = await orchestrator.query(
        ...     "Express Entry requirements", chunk_limit=5, oversample_factor=3
        ... )
        >>> context = build_context(result, language="en")
    """

    def __init__(
        self,
        vector_search: "VectorSearch",
        graph_store: "KnowledgeGraphStore",
        reranker: Optional[BaseReranker] = None,
        config: Optional[RetrieverConfig] = None,
    ):
        """
        Args:
            vector_search: Passage search (primary channel)
            graph_store: Entity search and relationship expansion
            reranker: Optional cross-encoder reranker
            config: Retrieval policy (thresholds, oversampling, timeouts)
        """
        self.vector_search = vector_search
        self.graph_store = graph_store
        self.reranker = reranker
        self.config = config or RetrieverConfig()

        log.info(
            "retrieval_orchestrator_initialized",
            reranker=self.reranker_configured,
            oversample_factor=self.config.oversample_factor,
            similarity_threshold=self.config.similarity_threshold,
            rerank_threshold=self.config.rerank_threshold,
        )

    @property
    def reranker_configured(self) -> bool:
        return (
            self.config.reranking_enabled
            and self.reranker is not None
            and self.reranker.is_configured
        )

    async def query(
        self,
        query_text: str,
        chunk_limit: int = 5,
        entity_limit: int = 5,
        language: Optional[str] = None,
        include_related_entities: bool = True,
        enable_reranking: bool = True,
        oversample_factor: Optional[int] = None,
        entity_types: Optional[Sequence[str]] = None,
        relationship_types: Optional[Sequence[str]] = None,
    ) -> RetrievalResult:
        """Keyword entry point; see RetrievalQuery for the parameters."""
        return await self.retrieve(
            RetrievalQuery(
                text=query_text,
                chunk_limit=chunk_limit,
                entity_limit=entity_limit,
                language=language,
                include_related_entities=include_related_entities,
                enable_reranking=enable_reranking,
                oversample_factor=oversample_factor,
                entity_types=entity_types,
                relationship_types=relationship_types,
            )
        )

    def plan(self, query: RetrievalQuery) -> RetrievalPlan:
        """Decide reranking, candidate count and similarity threshold."""
        factor = query.oversample_factor or self.config.oversample_factor
        should_rerank = query.enable_reranking and self.reranker_configured

        if should_rerank:
            return RetrievalPlan(
                should_rerank=True,
                search_limit=query.chunk_limit * factor,
                threshold=self.config.rerank_threshold,
                oversample_factor=factor,
            )
        return RetrievalPlan(
            should_rerank=False,
            search_limit=query.chunk_limit,
            threshold=self.config.similarity_threshold,
            oversample_factor=1,
        )

    async def retrieve(self, query: RetrievalQuery) -> RetrievalResult:
        """
        Run the full pipeline for one query.

        Returns:
            RetrievalResult, possibly empty, never None

        Raises:
            VectorSearchError: The vector index or query embedding failed
        """
        start = time.perf_counter()
        text = query.normalized_text

        if not text:
            log.debug("retrieval_skipped", reason="empty_query")
            return RetrievalResult(metadata={"skipped": "empty_query"})

        plan = self.plan(query)
        timings: Dict[str, float] = {}

        # Stage 1: both channels, awaited together
        stage_start = time.perf_counter()
        vector_outcome, entity_outcome = await asyncio.gather(
            self._search_passages(text, plan, query.language),
            self._search_entities(text, query),
            return_exceptions=True,
        )
        timings["stage1"] = _elapsed_ms(stage_start)

        if isinstance(vector_outcome, BaseException):
            log.error(
                "retrieval_failed",
                stage="vector_search",
                error=str(vector_outcome),
                time_ms=_elapsed_ms(start),
            )
            raise vector_outcome
        if isinstance(entity_outcome, BaseException):
            raise entity_outcome

        candidates: List[Passage] = vector_outcome
        entities: List[Entity] = entity_outcome

        # Rerank or truncate
        metadata: Dict[str, Any] = {
            "search_limit": plan.search_limit,
            "threshold": plan.threshold,
            "candidates": len(candidates),
        }
        reranked = False
        if plan.should_rerank and candidates:
            stage_start = time.perf_counter()
            outcome = await self._rerank(text, candidates, query.chunk_limit)
            timings["rerank"] = _elapsed_ms(stage_start)

            passages = []
            error = outcome.error
            if outcome.success:
                passages = self._apply_rerank(candidates, outcome.items, query.chunk_limit)
                if not passages:
                    error = "reranker returned no usable ranking"

            if passages:
                reranked = True
                metadata["rerank"] = "applied"
            else:
                log.warning("rerank_fallback", reason=error, candidates=len(candidates))
                passages = candidates[:query.chunk_limit]
                metadata["rerank"] = "fallback"
                metadata["rerank_error"] = error
        else:
            passages = candidates[:query.chunk_limit]
            metadata["rerank"] = "skipped" if plan.should_rerank else "disabled"

        # Stage 2: relationship expansion
        related: List[RelatedEntity] = []
        if query.include_related_entities and entities:
            anchors = entities[:self.config.max_expanded_entities]
            stage_start = time.perf_counter()
            related = await self._expand(anchors, query.relationship_types)
            timings["expansion"] = _elapsed_ms(stage_start)
            metadata["expanded_entities"] = len(anchors)

        timings["total"] = _elapsed_ms(start)
        metadata["timings_ms"] = timings

        log.info(
            "retrieval_completed",
            passages=len(passages),
            entities=len(entities),
            related=len(related),
            rerank=metadata["rerank"],
            time_ms=timings["total"],
        )

        return RetrievalResult(
            passages=passages,
            entities=entities,
            related_entities=related,
            reranked=reranked,
            metadata=metadata,
        )

    async def _search_passages(
        self,
        text: str,
        plan: RetrievalPlan,
        language: Optional[str],
    ) -> List[Passage]:
        timeout = self.config.vector_timeout_seconds
        try:
            return await asyncio.wait_for(
                self.vector_search.search_text(
                    text,
                    limit=plan.search_limit,
                    threshold=plan.threshold,
                    language=language,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise VectorSearchError(f"Vector search timed out after {timeout}s") from e

    async def _search_entities(self, text: str, query: RetrievalQuery) -> List[Entity]:
        try:
            entities = await asyncio.wait_for(
                self.graph_store.search_entities(
                    text,
                    limit=query.entity_limit,
                    entity_types=query.entity_types,
                ),
                timeout=self.config.entity_timeout_seconds,
            )
        except asyncio.TimeoutError:
            log.warning("entity_search_timeout", timeout_s=self.config.entity_timeout_seconds)
            return []
        except Exception as e:
            log.warning("entity_search_failed", error=str(e))
            return []

        return list(entities)[:query.entity_limit]

    async def _rerank(self, text: str, candidates: List[Passage], top_n: int) -> RerankOutcome:
        """Call the reranker; anything but a RerankOutcome becomes a failed one."""
        timeout = self.config.rerank_timeout_seconds
        try:
            outcome = await asyncio.wait_for(
                self.reranker.rerank(text, [p.text for p in candidates], top_n),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            return RerankOutcome.fail(f"timeout after {timeout}s")
        except Exception as e:
            return RerankOutcome.fail(f"reranker raised {type(e).__name__}: {e}")

        if not isinstance(outcome, RerankOutcome):
            return RerankOutcome.fail(
                f"reranker returned {type(outcome).__name__}, expected RerankOutcome"
            )
        return outcome

    @staticmethod
    def _apply_rerank(
        candidates: List[Passage],
        items: List[RerankedItem],
        chunk_limit: int,
    ) -> List[Passage]:
        """
        Rescore candidates with reranker scores, in reranker order.

        Returns [] when the ranking is unusable: empty, not made of
        RerankedItem, or with out-of-range or repeated indices.
        """
        if not isinstance(items, list) or not items:
            return []
        if not all(isinstance(item, RerankedItem) for item in items):
            return []
        indices = [item.index for item in items]
        if len(set(indices)) != len(indices):
            return []
        if not all(0 <= index < len(candidates) for index in indices):
            return []

        passages = [
            replace(candidates[item.index], similarity=item.relevance_score)
            for item in items
        ]
        passages.sort(key=lambda p: p.similarity, reverse=True)
        return passages[:chunk_limit]

    async def _expand(
        self,
        anchors: List[Entity],
        relationship_types: Optional[Sequence[str]],
    ) -> List[RelatedEntity]:
        semaphore = asyncio.Semaphore(max(1, self.config.max_expanded_entities))
        timeout = self.config.expansion_timeout_seconds

        async def expand_one(entity: Entity) -> List[RelatedEntity]:
            async with semaphore:
                try:
                    return await asyncio.wait_for(
                        self.graph_store.get_related_entities(
                            entity.id,
                            limit=self.config.relationships_per_entity,
                            relationship_types=relationship_types,
                        ),
                        timeout=timeout,
                    )
                except asyncio.TimeoutError:
                    log.warning("expansion_timeout", entity_id=entity.id, timeout_s=timeout)
                    return []
                except Exception as e:
                    log.warning("expansion_failed", entity_id=entity.id, error=str(e))
                    return []

        results = await asyncio.gather(*(expand_one(entity) for entity in anchors))
        return [pair for pairs in results for pair in pairs]
