"""
Knowledge Graph Store
=====================

Entity search and relationship expansion over the FalkorDB knowledge graph.

Graph schema (written by the offline ingestion job):

    (:Entity {id, entity_type, entity_name, display_name,
              properties, confidence_score, is_active})
        -[:RELATED {id, relationship_type, properties, strength}]->
    (:Entity)

`properties` is stored as a JSON object string and validated against the
schema of the entity type when read (see retriever.properties).

Entity search is lexical, not semantic: it complements vector search with
exact program, country and document names that embeddings tend to blur.
"""

from typing import Any, Dict, List, Optional, Sequence

import structlog

from immirag.storage.graph.client import FalkorDBClient
from immirag.storage.retriever.models import Entity, RelatedEntity, Relationship
from immirag.storage.retriever.properties import validate_properties

log = structlog.get_logger()


ENTITY_SEARCH_CYPHER = """
    MATCH (e:Entity)
    WHERE e.is_active = true
      AND (
        toLower(e.entity_name) CONTAINS $query
        OR (size(e.entity_name) >= $min_name_length
            AND $query CONTAINS toLower(e.entity_name))
      )
      {type_filter}
    RETURN e.id AS id, e.entity_type AS entity_type, e.entity_name AS entity_name,
           e.display_name AS display_name, e.properties AS properties,
           e.confidence_score AS confidence_score, e.is_active AS is_active
    ORDER BY e.confidence_score DESC
    LIMIT $limit
"""

RELATED_ENTITIES_CYPHER = """
    MATCH (s:Entity)-[r:RELATED]->(t:Entity)
    WHERE (s.id = $entity_id OR t.id = $entity_id)
      {type_filter}
    RETURN r.id AS rel_id, r.relationship_type AS relationship_type,
           r.properties AS rel_properties, r.strength AS strength,
           s.id AS s_id, s.entity_type AS s_entity_type, s.entity_name AS s_entity_name,
           s.display_name AS s_display_name, s.properties AS s_properties,
           s.confidence_score AS s_confidence_score, s.is_active AS s_is_active,
           t.id AS t_id, t.entity_type AS t_entity_type, t.entity_name AS t_entity_name,
           t.display_name AS t_display_name, t.properties AS t_properties,
           t.confidence_score AS t_confidence_score, t.is_active AS t_is_active
    ORDER BY r.strength DESC
    LIMIT $limit
"""


class KnowledgeGraphStore:
    """
    Read-only access to knowledge-graph entities and relationships.

    Example:
        >>> store = KnowledgeGraphStore(falkordb_client)
        >>> entities = await store.search_entities("express entry", limit=5)
        >>> related = await store.get_related_entities(entities[0].id, limit=5)
        >>> for pair in related:
        ...     print(pair.relationship.relationship_type, pair.entity.label)
    """

    def __init__(self, client: FalkorDBClient, min_name_length: int = 3):
        """
        Args:
            client: Connected FalkorDB client
            min_name_length: Shortest entity name that may match when the
                             query contains the name (avoids "EU" matching
                             every query that contains "eu")
        """
        self.client = client
        self.min_name_length = min_name_length

    async def search_entities(
        self,
        query_text: str,
        limit: int = 10,
        entity_types: Optional[Sequence[str]] = None,
    ) -> List[Entity]:
        """
        Find active entities whose name matches the query text.

        Matching is case-insensitive substring matching in both directions:
        the entity name contains the query, or the query mentions the name.

        Args:
            query_text: Free text
            limit: Maximum entities returned
            entity_types: Optional entity type filter

        Returns:
            Entities ordered by descending confidence
        """
        query = query_text.strip().lower()
        if not query:
            return []

        params: Dict[str, Any] = {
            "query": query,
            "min_name_length": self.min_name_length,
            "limit": limit,
        }
        type_filter = ""
        if entity_types:
            type_filter = "AND e.entity_type IN $entity_types"
            params["entity_types"] = list(entity_types)

        rows = await self.client.query(
            ENTITY_SEARCH_CYPHER.format(type_filter=type_filter),
            params,
        )
        entities = [self._entity_from_row(row) for row in rows]
        # Confidence order, whatever the driver returns
        entities.sort(key=lambda e: e.confidence, reverse=True)

        log.debug("entity_search", query=query[:50], matches=len(entities))
        return entities[:limit]

    async def get_related_entities(
        self,
        entity_id: str,
        limit: int = 10,
        relationship_types: Optional[Sequence[str]] = None,
    ) -> List[RelatedEntity]:
        """
        Expand one entity through its relationships.

        Edges are matched in both directions; the endpoint that is not the
        anchor entity is returned with the edge.

        Args:
            entity_id: Anchor entity id
            limit: Maximum pairs returned
            relationship_types: Optional relationship type filter

        Returns:
            (entity, relationship) pairs ordered by descending strength
        """
        params: Dict[str, Any] = {"entity_id": entity_id, "limit": limit}
        type_filter = ""
        if relationship_types:
            type_filter = "AND r.relationship_type IN $relationship_types"
            params["relationship_types"] = list(relationship_types)

        rows = await self.client.query(
            RELATED_ENTITIES_CYPHER.format(type_filter=type_filter),
            params,
        )

        related = []
        for row in rows:
            relationship = Relationship(
                id=str(row["rel_id"]),
                source_entity_id=str(row["s_id"]),
                target_entity_id=str(row["t_id"]),
                relationship_type=row.get("relationship_type") or "",
                properties=validate_properties(
                    row.get("rel_properties"), owner_id=str(row["rel_id"])
                ),
                strength=float(row.get("strength") or 0.0),
            )
            prefix = "t_" if relationship.source_entity_id == entity_id else "s_"
            other = self._entity_from_row(
                {key[len(prefix):]: value for key, value in row.items() if key.startswith(prefix)}
            )
            related.append(RelatedEntity(entity=other, relationship=relationship))

        related.sort(key=lambda pair: pair.relationship.strength, reverse=True)

        log.debug("relationship_expansion", entity_id=entity_id, related=len(related))
        return related[:limit]

    @staticmethod
    def _entity_from_row(row: Dict[str, Any]) -> Entity:
        entity_id = str(row["id"])
        entity_type = row.get("entity_type") or ""
        confidence = row.get("confidence_score")
        return Entity(
            id=entity_id,
            entity_type=entity_type,
            entity_name=row.get("entity_name") or "",
            display_name=row.get("display_name") or None,
            properties=validate_properties(
                row.get("properties"), entity_type=entity_type, owner_id=entity_id
            ),
            confidence=float(confidence) if confidence is not None else 0.0,
            is_active=bool(row.get("is_active", True)),
        )
