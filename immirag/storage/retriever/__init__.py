"""
Retrieval pipeline: models, reranker, orchestrator and context assembler.
"""

from .models import (
    Entity,
    Passage,
    RelatedEntity,
    Relationship,
    RetrievalQuery,
    RetrievalResult,
    RetrieverConfig,
    load_retriever_config,
)
from .reranker import (
    BaseReranker,
    CohereReranker,
    RerankedItem,
    RerankerConfig,
    RerankOutcome,
)
from .orchestrator import RetrievalOrchestrator, RetrievalPlan
from .context import build_context, no_context_notice

__all__ = [
    "Entity",
    "Passage",
    "RelatedEntity",
    "Relationship",
    "RetrievalQuery",
    "RetrievalResult",
    "RetrieverConfig",
    "load_retriever_config",
    "BaseReranker",
    "CohereReranker",
    "RerankedItem",
    "RerankerConfig",
    "RerankOutcome",
    "RetrievalOrchestrator",
    "RetrievalPlan",
    "build_context",
    "no_context_notice",
]
