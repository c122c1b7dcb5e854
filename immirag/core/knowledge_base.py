"""
Knowledge Base
==============

Facade wiring the retrieval pipeline to its backends:
- FalkorDB (entities and relationships)
- Qdrant (passage embeddings)
- Cohere (reranking, optional)
- sentence-transformers (query embeddings)

Usage:
    from immirag import KnowledgeBase, KnowledgeBaseConfig, setup_logging

    setup_logging(level="DEBUG")

    async with KnowledgeBase(KnowledgeBaseConfig.for_environment()) as kb:
        result = await kb.query("Express Entry requirements", chunk_limit=5)
        context = kb.build_context(result, language="en")
        if not context:
            context_note = kb.no_context_notice("en")
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

from immirag.storage.graph import FalkorDBClient, FalkorDBConfig, KnowledgeGraphStore
from immirag.storage.retriever import (
    BaseReranker,
    CohereReranker,
    RerankerConfig,
    RetrievalOrchestrator,
    RetrievalResult,
    RetrieverConfig,
    build_context,
    load_retriever_config,
    no_context_notice,
)
from immirag.storage.vectors import (
    BaseEmbeddingProvider,
    EmbeddingService,
    QdrantConfig,
    VectorSearch,
)

log = structlog.get_logger()

ENVIRONMENTS_PATH = Path(__file__).parent.parent / "config" / "environments.yaml"


def load_environments(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Read the environment table.

    Returns:
        {"default": name, "environments": {name: profile}}
    """
    import yaml

    with open(Path(path) if path is not None else ENVIRONMENTS_PATH, "r") as f:
        table = yaml.safe_load(f) or {}
    return {
        "default": table.get("default", "test"),
        "environments": table.get("environments") or {},
    }


@dataclass
class KnowledgeBaseConfig:
    """
    Configuration for KnowledgeBase.

    Backend sections default to their environment-variable driven configs;
    the retrieval policy defaults to the packaged YAML file.
    """
    falkordb: FalkorDBConfig = field(default_factory=FalkorDBConfig)
    qdrant: QdrantConfig = field(default_factory=QdrantConfig)
    reranker: RerankerConfig = field(default_factory=RerankerConfig)
    retriever: RetrieverConfig = field(default_factory=load_retriever_config)
    embedding_model: Optional[str] = None

    @classmethod
    def for_environment(
        cls,
        env: Optional[str] = None,
        environments_path: Optional[Path] = None,
        **overrides,
    ) -> "KnowledgeBaseConfig":
        """
        Build a config for a named environment ("test", "prod").

        The name comes from `env`, then IMMIRAG_ENV, then the table default.
        The profile picks the graph and the collection, and its `policy`
        entries override the packaged retrieval policy. An explicit
        `retriever=` override replaces the policy entirely.

        Raises:
            ValueError: Unknown environment name or policy field
        """
        table = load_environments(environments_path)
        name = (env or os.environ.get("IMMIRAG_ENV") or table["default"]).strip().lower()

        profile = table["environments"].get(name)
        if profile is None:
            choices = ", ".join(sorted(table["environments"]))
            raise ValueError(f"Unknown environment '{name}' (choose from: {choices})")

        retriever = overrides.pop("retriever", None)
        if retriever is None:
            policy = profile.get("policy") or {}
            try:
                retriever = replace(load_retriever_config(), **policy)
            except TypeError as e:
                raise ValueError(f"Invalid policy for environment '{name}': {e}") from e

        log.info(
            "environment_selected",
            environment=name,
            graph=profile["falkordb_graph"],
            collection=profile["qdrant_collection"],
        )
        return cls(
            falkordb=FalkorDBConfig(graph_name=profile["falkordb_graph"]),
            qdrant=QdrantConfig(collection_name=profile["qdrant_collection"]),
            retriever=retriever,
            **overrides,
        )


class KnowledgeBase:
    """
    Retrieval entry point for chat-completion callers.

    Collaborators can be injected (tests, custom providers); anything not
    injected is built from the config on connect().
    """

    def __init__(
        self,
        config: Optional[KnowledgeBaseConfig] = None,
        embedding_provider: Optional[BaseEmbeddingProvider] = None,
        reranker: Optional[BaseReranker] = None,
        graph_client: Optional[FalkorDBClient] = None,
        vector_search: Optional[VectorSearch] = None,
    ):
        self.config = config or KnowledgeBaseConfig()
        self._embedding_provider = embedding_provider
        self._reranker = reranker
        self._graph_client = graph_client
        self._vector_search = vector_search
        self._orchestrator: Optional[RetrievalOrchestrator] = None
        self._connected = False

    @property
    def orchestrator(self) -> RetrievalOrchestrator:
        if self._orchestrator is None:
            raise RuntimeError("Not connected. Call connect() first.")
        return self._orchestrator

    async def connect(self) -> None:
        """Connect to the backends and build the orchestrator."""
        if self._connected:
            log.warning("knowledge_base_already_connected")
            return

        log.info("knowledge_base_connecting")

        if self._graph_client is None:
            self._graph_client = FalkorDBClient(self.config.falkordb)
        await self._graph_client.connect()

        if self._vector_search is None:
            if self._embedding_provider is None:
                self._embedding_provider = EmbeddingService.get_instance(
                    model_name=self.config.embedding_model
                )
            self._vector_search = VectorSearch.from_config(
                self.config.qdrant, embedding_provider=self._embedding_provider
            )

        if self._reranker is None:
            self._reranker = CohereReranker(self.config.reranker)

        self._orchestrator = RetrievalOrchestrator(
            vector_search=self._vector_search,
            graph_store=KnowledgeGraphStore(self._graph_client),
            reranker=self._reranker,
            config=self.config.retriever,
        )
        self._connected = True
        log.info("knowledge_base_connected")

    async def close(self) -> None:
        if not self._connected:
            return

        if isinstance(self._reranker, CohereReranker):
            await self._reranker.close()
        if self._vector_search is not None:
            await self._vector_search.close()
        await self._graph_client.close()

        self._orchestrator = None
        self._connected = False
        log.info("knowledge_base_closed")

    async def __aenter__(self) -> "KnowledgeBase":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def query(self, query_text: str, **options: Any) -> RetrievalResult:
        """
        Retrieve passages and entities for a user query.

        Options are those of RetrievalOrchestrator.query (chunk_limit,
        entity_limit, language, include_related_entities, enable_reranking,
        oversample_factor, entity_types, relationship_types).

        Raises:
            VectorSearchError: The primary retrieval channel failed
        """
        return await self.orchestrator.query(query_text, **options)

    @staticmethod
    def build_context(
        result: RetrievalResult,
        language: str = "en",
        include_relationships: bool = False,
    ) -> str:
        return build_context(result, language=language, include_relationships=include_relationships)

    @staticmethod
    def no_context_notice(language: str = "en") -> str:
        return no_context_notice(language)

    async def health_check(self) -> Dict[str, bool]:
        """Reachability of each backend; the reranker reports configuration only."""
        if not self._connected:
            raise RuntimeError("Not connected. Call connect() first.")

        return {
            "graph": await self._graph_client.health_check(),
            "vectors": await self._vector_search.health_check(),
            "reranker": self.orchestrator.reranker_configured,
        }
