"""
immirag Test Configuration
==========================

Shared fixtures for all tests.
"""

from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest

from immirag.storage.retriever import (
    Entity,
    Passage,
    RelatedEntity,
    Relationship,
    RerankOutcome,
    RetrieverConfig,
)


# Mock FalkorDB client for unit tests
@pytest.fixture
def mock_falkordb():
    """Mock FalkorDB client for unit tests."""
    client = MagicMock()
    client.connect = AsyncMock()
    client.close = AsyncMock()
    client.query = AsyncMock(return_value=[])
    client.health_check = AsyncMock(return_value=True)
    return client


@pytest.fixture
def mock_vector_search():
    """Mock VectorSearch returning no passages."""
    search = MagicMock()
    search.search_text = AsyncMock(return_value=[])
    search.health_check = AsyncMock(return_value=True)
    search.close = AsyncMock()
    return search


@pytest.fixture
def mock_graph_store():
    """Mock KnowledgeGraphStore returning no entities."""
    store = MagicMock()
    store.search_entities = AsyncMock(return_value=[])
    store.get_related_entities = AsyncMock(return_value=[])
    return store


@pytest.fixture
def mock_reranker():
    """Configured reranker mock; tests set rerank.return_value."""
    reranker = MagicMock()
    reranker.is_configured = True
    reranker.rerank = AsyncMock(return_value=RerankOutcome.fail("not set"))
    return reranker


@pytest.fixture
def retriever_config():
    """Default retrieval policy with short timeouts."""
    return RetrieverConfig(
        vector_timeout_seconds=1.0,
        entity_timeout_seconds=0.2,
        expansion_timeout_seconds=0.2,
        rerank_timeout_seconds=0.2,
    )


# Sample data fixtures
def make_passages(count: int, start: float = 0.95, step: float = 0.03) -> List[Passage]:
    """Passages with strictly decreasing similarity."""
    return [
        Passage(
            id=f"chunk-{i}",
            document_id=f"doc-{i // 3}",
            text=f"Express Entry guide section {i}",
            similarity=round(start - i * step, 4),
            chunk_index=i % 3,
            language="en",
            source_url=f"https://example.org/guides/{i // 3}",
        )
        for i in range(count)
    ]


def make_entities(count: int) -> List[Entity]:
    """Entities with strictly decreasing confidence."""
    return [
        Entity(
            id=f"entity-{i}",
            entity_type="immigration_program",
            entity_name=f"program {i}",
            confidence=round(1.0 - i * 0.05, 2),
        )
        for i in range(count)
    ]


@pytest.fixture
def sample_passages() -> List[Passage]:
    return make_passages(5)


@pytest.fixture
def express_entry():
    return Entity(
        id="program-express-entry",
        entity_type="immigration_program",
        entity_name="express entry",
        display_name="Express Entry",
        properties={"country": "Canada", "min_score": 67, "processing_time": "6 months"},
        confidence=0.98,
    )


@pytest.fixture
def sample_related(express_entry):
    """Express Entry -> requires -> IELTS."""
    ielts = Entity(
        id="document-ielts",
        entity_type="document_type",
        entity_name="ielts",
        display_name="IELTS General Training",
        properties={"validity_months": 24},
        confidence=0.9,
    )
    relationship = Relationship(
        id="rel-1",
        source_entity_id=express_entry.id,
        target_entity_id=ielts.id,
        relationship_type="requires",
        strength=0.9,
    )
    return [RelatedEntity(entity=ielts, relationship=relationship)]


@pytest.fixture
def passage_factory():
    return make_passages


@pytest.fixture
def entity_factory():
    return make_entities
