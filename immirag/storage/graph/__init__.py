"""
immirag Graph Storage
=====================

Knowledge graph on FalkorDB (Cypher-compatible).

Components:
- FalkorDBClient: async client
- FalkorDBConfig: connection settings
- KnowledgeGraphStore: entity search and relationship expansion

Example:
    from immirag.storage.graph import FalkorDBClient, FalkorDBConfig, KnowledgeGraphStore

    client = FalkorDBClient(FalkorDBConfig(graph_name="immirag_prod"))
    await client.connect()
    store = KnowledgeGraphStore(client)
"""

from immirag.storage.graph.config import FalkorDBConfig
from immirag.storage.graph.client import FalkorDBClient
from immirag.storage.graph.knowledge import KnowledgeGraphStore

__all__ = [
    "FalkorDBClient",
    "FalkorDBConfig",
    "KnowledgeGraphStore",
]
