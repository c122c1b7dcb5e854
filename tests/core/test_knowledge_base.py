"""
Test KnowledgeBase facade
=========================

Backends are injected mocks; no network access.
"""

from unittest.mock import patch

import pytest

from immirag import KnowledgeBase, KnowledgeBaseConfig
from immirag.storage.errors import VectorSearchError
from immirag.storage.retriever import RerankerConfig, RetrieverConfig
from immirag.storage.retriever.reranker import CohereReranker


@pytest.fixture
def kb_config():
    return KnowledgeBaseConfig(
        reranker=RerankerConfig(api_key=None),
        retriever=RetrieverConfig(),
    )


@pytest.fixture
def knowledge_base(kb_config, mock_falkordb, mock_vector_search, mock_reranker):
    return KnowledgeBase(
        kb_config,
        reranker=mock_reranker,
        graph_client=mock_falkordb,
        vector_search=mock_vector_search,
    )


class TestKnowledgeBaseConfig:

    def test_for_environment(self):
        config = KnowledgeBaseConfig.for_environment("prod", retriever=RetrieverConfig())

        assert config.falkordb.graph_name == "immirag_prod"
        assert config.qdrant.collection_name == "immirag_prod_chunks"
        assert config.falkordb.port == 6380

    def test_default_policy_loaded(self):
        config = KnowledgeBaseConfig()

        assert config.retriever.oversample_factor == 3


class TestKnowledgeBase:

    @pytest.mark.asyncio
    async def test_query_requires_connect(self, knowledge_base):
        with pytest.raises(RuntimeError, match="Not connected"):
            await knowledge_base.query("Express Entry requirements")

    @pytest.mark.asyncio
    async def test_connect_and_query(
        self, knowledge_base, mock_falkordb, mock_vector_search, passage_factory
    ):
        mock_vector_search.search_text.return_value = passage_factory(3)

        await knowledge_base.connect()
        result = await knowledge_base.query("Express Entry requirements", enable_reranking=False)

        mock_falkordb.connect.assert_awaited_once()
        assert len(result.passages) == 3
        assert knowledge_base.build_context(result).startswith("---\n<KNOWLEDGE_BASE>")

    @pytest.mark.asyncio
    async def test_entity_search_goes_through_graph_client(self, knowledge_base, mock_falkordb):
        await knowledge_base.connect()
        await knowledge_base.query("D7 visa", include_related_entities=False)

        cypher, params = mock_falkordb.query.await_args.args
        assert "MATCH (e:Entity)" in cypher
        assert params["query"] == "d7 visa"

    @pytest.mark.asyncio
    async def test_vector_failure_surfaces(self, knowledge_base, mock_vector_search):
        mock_vector_search.search_text.side_effect = VectorSearchError("index down")

        async with knowledge_base as kb:
            with pytest.raises(VectorSearchError):
                await kb.query("Express Entry requirements")

    @pytest.mark.asyncio
    async def test_context_manager_closes(self, knowledge_base, mock_falkordb, mock_vector_search):
        async with knowledge_base:
            pass

        mock_falkordb.close.assert_awaited_once()
        mock_vector_search.close.assert_awaited_once()
        with pytest.raises(RuntimeError):
            knowledge_base.orchestrator

    @pytest.mark.asyncio
    async def test_health_check(self, knowledge_base, mock_reranker):
        async with knowledge_base as kb:
            health = await kb.health_check()

        assert health == {"graph": True, "vectors": True, "reranker": True}

    @pytest.mark.asyncio
    async def test_health_check_requires_connect(self, knowledge_base):
        with pytest.raises(RuntimeError):
            await knowledge_base.health_check()

    @pytest.mark.asyncio
    async def test_default_reranker_from_config(self, kb_config, mock_falkordb, mock_vector_search):
        kb = KnowledgeBase(kb_config, graph_client=mock_falkordb, vector_search=mock_vector_search)

        await kb.connect()

        assert isinstance(kb.orchestrator.reranker, CohereReranker)
        assert kb.orchestrator.reranker_configured is False
        await kb.close()

    @pytest.mark.asyncio
    async def test_default_vector_search_uses_embedding_service(self, kb_config, mock_falkordb):
        kb = KnowledgeBase(kb_config, graph_client=mock_falkordb)

        with patch("immirag.core.knowledge_base.EmbeddingService") as service_cls, \
                patch("immirag.core.knowledge_base.VectorSearch") as search_cls:
            await kb.connect()

        service_cls.get_instance.assert_called_once_with(model_name=None)
        search_cls.from_config.assert_called_once_with(
            kb_config.qdrant, embedding_provider=service_cls.get_instance.return_value
        )

    def test_no_context_notice(self):
        assert "general knowledge" in KnowledgeBase.no_context_notice("en")
