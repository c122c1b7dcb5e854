"""
Retrieval Models
================

Dataclasses for queries, retrieved items, results and retrieval policy.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import structlog

log = structlog.get_logger()

# Relationship expansion never fans out over more anchors than this,
# whatever the entity limit of the query.
MAX_EXPANDED_ENTITIES = 3

DEFAULT_POLICY_PATH = Path(__file__).parent.parent.parent / "config" / "retrieval_policy.yaml"


@dataclass(frozen=True)
class RetrievalQuery:
    """
    One retrieval request. Immutable, created per request.

    Attributes:
        text: Free-text user query
        chunk_limit: Maximum passages returned
        entity_limit: Maximum entities returned
        language: Optional language tag used to filter passages ("en", "ar")
        include_related_entities: Expand relationships of the top entities
        enable_reranking: Rerank vector candidates when a reranker is configured
        oversample_factor: Candidate multiplier when reranking
                           (None = RetrieverConfig.oversample_factor)
        entity_types: Optional entity type filter for entity search
        relationship_types: Optional relationship type filter for expansion
    """
    text: str
    chunk_limit: int = 5
    entity_limit: int = 5
    language: Optional[str] = None
    include_related_entities: bool = True
    enable_reranking: bool = True
    oversample_factor: Optional[int] = None
    entity_types: Optional[Tuple[str, ...]] = None
    relationship_types: Optional[Tuple[str, ...]] = None

    def __post_init__(self):
        if self.chunk_limit < 1:
            raise ValueError(f"chunk_limit must be >= 1, got {self.chunk_limit}")
        if self.entity_limit < 1:
            raise ValueError(f"entity_limit must be >= 1, got {self.entity_limit}")
        if self.oversample_factor is not None and self.oversample_factor < 1:
            raise ValueError(
                f"oversample_factor must be >= 1, got {self.oversample_factor}"
            )
        # Stored as tuples so the query stays hashable
        if self.entity_types is not None:
            object.__setattr__(self, "entity_types", tuple(self.entity_types))
        if self.relationship_types is not None:
            object.__setattr__(self, "relationship_types", tuple(self.relationship_types))

    @property
    def normalized_text(self) -> str:
        return self.text.strip()


@dataclass(frozen=True)
class Passage:
    """
    A chunk of a knowledge-base document returned by vector search.

    `similarity` holds the vector similarity, or the reranker relevance score
    once the result set has been reranked.
    """
    id: str
    document_id: str
    text: str
    similarity: float
    chunk_index: int = 0
    language: Optional[str] = None
    source_url: Optional[str] = None
    entities: Optional[List[Any]] = None
    key_phrases: Optional[List[Any]] = None

    def __repr__(self) -> str:
        return (
            f"<Passage(id={self.id[:8]}..., doc={self.document_id[:8]}..., "
            f"score={self.similarity:.3f})>"
        )


@dataclass(frozen=True)
class Entity:
    """Knowledge-graph node (program, country, document type, ...)."""
    id: str
    entity_type: str
    entity_name: str
    display_name: Optional[str] = None
    properties: Dict[str, Any] = field(default_factory=dict)
    confidence: float = 1.0
    is_active: bool = True

    @property
    def label(self) -> str:
        """Name shown to the language model."""
        return self.display_name or self.entity_name


@dataclass(frozen=True)
class Relationship:
    """Directed, typed and weighted edge between two entities."""
    id: str
    source_entity_id: str
    target_entity_id: str
    relationship_type: str
    properties: Dict[str, Any] = field(default_factory=dict)
    strength: float = 1.0


@dataclass(frozen=True)
class RelatedEntity:
    """An entity reached from an anchor entity through `relationship`."""
    entity: Entity
    relationship: Relationship


@dataclass
class RetrievalResult:
    """
    Aggregate answer to one query. Ephemeral, never persisted.

    Attributes:
        passages: Ranked passages (len <= chunk_limit)
        entities: Matched entities by confidence (len <= entity_limit)
        related_entities: (entity, relationship) pairs from expansion
        reranked: True when passage scores are reranker scores
        metadata: Candidate counts, thresholds, rerank status, timings (ms)
    """
    passages: List[Passage] = field(default_factory=list)
    entities: List[Entity] = field(default_factory=list)
    related_entities: List[RelatedEntity] = field(default_factory=list)
    reranked: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.passages and not self.entities

    def __repr__(self) -> str:
        return (
            f"<RetrievalResult(passages={len(self.passages)}, "
            f"entities={len(self.entities)}, related={len(self.related_entities)}, "
            f"reranked={self.reranked})>"
        )


@dataclass
class RetrieverConfig:
    """
    Retrieval policy for RetrievalOrchestrator.

    Attributes:
        similarity_threshold: Strict vector threshold used without reranking
        rerank_threshold: Permissive vector threshold used when reranking
        oversample_factor: Candidate multiplier when reranking (default 3x)
        max_expanded_entities: Top entities whose relationships are expanded
                               (capped at MAX_EXPANDED_ENTITIES)
        relationships_per_entity: Edges fetched per expanded entity
        vector_timeout_seconds: Vector search timeout (hard failure)
        entity_timeout_seconds: Entity search timeout (soft failure)
        expansion_timeout_seconds: Per-anchor expansion timeout (soft failure)
        rerank_timeout_seconds: Reranker timeout (fallback to vector order)
        reranking_enabled: Global switch, read once per request
    """
    similarity_threshold: float = 0.5
    rerank_threshold: float = 0.3
    oversample_factor: int = 3
    max_expanded_entities: int = MAX_EXPANDED_ENTITIES
    relationships_per_entity: int = 5
    vector_timeout_seconds: float = 10.0
    entity_timeout_seconds: float = 5.0
    expansion_timeout_seconds: float = 5.0
    rerank_timeout_seconds: float = 5.0
    reranking_enabled: bool = True

    def __post_init__(self):
        """Validate configuration values."""
        for name in ("similarity_threshold", "rerank_threshold"):
            value = getattr(self, name)
            if not 0 <= value <= 1:
                raise ValueError(f"{name} must be in [0, 1], got {value}")
        if self.rerank_threshold > self.similarity_threshold:
            raise ValueError(
                f"rerank_threshold ({self.rerank_threshold}) must not exceed "
                f"similarity_threshold ({self.similarity_threshold})"
            )
        if self.oversample_factor < 1:
            raise ValueError(f"oversample_factor must be >= 1, got {self.oversample_factor}")
        if not 0 <= self.max_expanded_entities <= MAX_EXPANDED_ENTITIES:
            raise ValueError(
                f"max_expanded_entities must be in [0, {MAX_EXPANDED_ENTITIES}], "
                f"got {self.max_expanded_entities}"
            )
        if self.relationships_per_entity < 1:
            raise ValueError(
                f"relationships_per_entity must be >= 1, got {self.relationships_per_entity}"
            )
        for name in (
            "vector_timeout_seconds",
            "entity_timeout_seconds",
            "expansion_timeout_seconds",
            "rerank_timeout_seconds",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0, got {getattr(self, name)}")


def load_retriever_config(path: Optional[Path] = None) -> RetrieverConfig:
    """
    Build RetrieverConfig from the YAML retrieval policy.

    Falls back to the dataclass defaults if the file cannot be found.
    Invalid values still raise ValueError.
    """
    import yaml

    config_path = Path(path) if path is not None else DEFAULT_POLICY_PATH

    try:
        with open(config_path, "r") as f:
            policy = yaml.safe_load(f) or {}
    except FileNotFoundError:
        log.warning("retrieval_policy_missing", path=str(config_path), using="defaults")
        return RetrieverConfig()

    defaults = RetrieverConfig()
    thresholds = policy.get("thresholds", {})
    expansion = policy.get("expansion", {})
    timeouts = policy.get("timeouts_seconds", {})

    return RetrieverConfig(
        similarity_threshold=float(thresholds.get("similarity", defaults.similarity_threshold)),
        rerank_threshold=float(thresholds.get("rerank", defaults.rerank_threshold)),
        oversample_factor=int(policy.get("oversample_factor", defaults.oversample_factor)),
        max_expanded_entities=int(expansion.get("max_entities", defaults.max_expanded_entities)),
        relationships_per_entity=int(
            expansion.get("relationships_per_entity", defaults.relationships_per_entity)
        ),
        vector_timeout_seconds=float(timeouts.get("vector_search", defaults.vector_timeout_seconds)),
        entity_timeout_seconds=float(timeouts.get("entity_search", defaults.entity_timeout_seconds)),
        expansion_timeout_seconds=float(timeouts.get("expansion", defaults.expansion_timeout_seconds)),
        rerank_timeout_seconds=float(timeouts.get("rerank", defaults.rerank_timeout_seconds)),
        reranking_enabled=bool(policy.get("reranking_enabled", defaults.reranking_enabled)),
    )
