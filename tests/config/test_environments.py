"""
Test environment selection
==========================

KnowledgeBaseConfig.for_environment over the packaged environments.yaml
and over small tables written to tmp_path.
"""

import pytest

from immirag import KnowledgeBaseConfig
from immirag.core.knowledge_base import load_environments
from immirag.storage.retriever import RetrieverConfig


@pytest.fixture(autouse=True)
def clear_environment(monkeypatch):
    monkeypatch.delenv("IMMIRAG_ENV", raising=False)


@pytest.fixture
def environments_file(tmp_path):
    path = tmp_path / "environments.yaml"
    path.write_text(
        "default: staging\n"
        "environments:\n"
        "  staging:\n"
        "    falkordb_graph: kb_staging\n"
        "    qdrant_collection: kb_staging_chunks\n"
        "    policy:\n"
        "      oversample_factor: 5\n"
        "  broken:\n"
        "    falkordb_graph: kb_broken\n"
        "    qdrant_collection: kb_broken_chunks\n"
        "    policy:\n"
        "      no_such_field: 1\n"
    )
    return path


class TestPackagedEnvironments:

    def test_table(self):
        table = load_environments()

        assert table["default"] == "test"
        assert set(table["environments"]) == {"test", "prod"}

    def test_default_is_test(self):
        config = KnowledgeBaseConfig.for_environment()

        assert config.falkordb.graph_name == "immirag_test"
        assert config.qdrant.collection_name == "immirag_test_chunks"

    def test_test_policy_overrides(self):
        config = KnowledgeBaseConfig.for_environment("test")

        assert config.retriever.reranking_enabled is False
        assert config.retriever.similarity_threshold == 0.5
        # Untouched fields come from retrieval_policy.yaml
        assert config.retriever.oversample_factor == 3

    def test_prod_keeps_packaged_policy(self):
        config = KnowledgeBaseConfig.for_environment("prod")

        assert config.falkordb.graph_name == "immirag_prod"
        assert config.qdrant.collection_name == "immirag_prod_chunks"
        assert config.retriever.reranking_enabled is True
        assert config.retriever.similarity_threshold == 0.5

    @pytest.mark.parametrize("value", ["prod", " PROD "])
    def test_env_var_selects(self, monkeypatch, value):
        monkeypatch.setenv("IMMIRAG_ENV", value)

        config = KnowledgeBaseConfig.for_environment()

        assert config.falkordb.graph_name == "immirag_prod"

    def test_argument_beats_env_var(self, monkeypatch):
        monkeypatch.setenv("IMMIRAG_ENV", "prod")

        config = KnowledgeBaseConfig.for_environment("test")

        assert config.falkordb.graph_name == "immirag_test"

    def test_unknown_environment(self):
        with pytest.raises(ValueError, match="choose from: prod, test"):
            KnowledgeBaseConfig.for_environment("staging")

    def test_explicit_retriever_wins(self):
        retriever = RetrieverConfig(oversample_factor=7)

        config = KnowledgeBaseConfig.for_environment("test", retriever=retriever)

        assert config.retriever is retriever
        assert config.retriever.reranking_enabled is True

    def test_other_overrides_pass_through(self):
        config = KnowledgeBaseConfig.for_environment("prod", embedding_model="intfloat/e5-small")

        assert config.embedding_model == "intfloat/e5-small"


class TestCustomTable:

    def test_table_default(self, environments_file):
        config = KnowledgeBaseConfig.for_environment(environments_path=environments_file)

        assert config.falkordb.graph_name == "kb_staging"
        assert config.retriever.oversample_factor == 5

    def test_invalid_policy_field(self, environments_file):
        with pytest.raises(ValueError, match="Invalid policy for environment 'broken'"):
            KnowledgeBaseConfig.for_environment("broken", environments_path=environments_file)
