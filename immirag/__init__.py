"""
immirag - Retrieval for an immigration assistant
================================================

Hybrid retrieval over a curated knowledge base: passage similarity search,
lexical entity search, optional cross-encoder reranking and one hop of
knowledge-graph expansion, rendered as a context block for a chat model.

Usage:
    from immirag import KnowledgeBase, setup_logging

    setup_logging(level="INFO", json_output=True)

    async with KnowledgeBase() as kb:
        result = await kb.query("What documents do I need for Express Entry?")
        context = kb.build_context(result, language="en")
"""

__version__ = "0.1.0"

from immirag.core import KnowledgeBase, KnowledgeBaseConfig
from immirag.logger import setup_logging
from immirag.storage import (
    Entity,
    Passage,
    RelatedEntity,
    RetrievalOrchestrator,
    RetrievalResult,
    RetrieverConfig,
    VectorSearchError,
    build_context,
)

__all__ = [
    "__version__",
    "KnowledgeBase",
    "KnowledgeBaseConfig",
    "Entity",
    "Passage",
    "RelatedEntity",
    "RetrievalOrchestrator",
    "RetrievalResult",
    "RetrieverConfig",
    "VectorSearchError",
    "build_context",
    "setup_logging",
]
