"""
Core API: KnowledgeBase facade.
"""

from immirag.core.knowledge_base import KnowledgeBase, KnowledgeBaseConfig

__all__ = [
    "KnowledgeBase",
    "KnowledgeBaseConfig",
]
