"""
FalkorDB Client
===============

Async wrapper around the synchronous falkordb-py client.

FalkorDB speaks the Redis protocol and accepts Cypher. Queries run in the
default executor so they never block the event loop.
"""

import asyncio
from typing import Any, Dict, List, Optional

import structlog
from falkordb import FalkorDB, Graph

from immirag.storage.graph.config import FalkorDBConfig

log = structlog.get_logger()


class FalkorDBClient:
    """
    Async client for the knowledge-graph database.

    Example:
        client = FalkorDBClient(config)
        await client.connect()

        rows = await client.query(
            "MATCH (e:Entity {id: $id}) RETURN e.entity_name AS name",
            {"id": "program-express-entry"}
        )

        await client.close()
    """

    def __init__(self, config: Optional[FalkorDBConfig] = None):
        self.config = config or FalkorDBConfig()
        self._db: Optional[FalkorDB] = None
        self._graph: Optional[Graph] = None
        self._connected = False

        log.info(
            "falkordb_client_initialized",
            host=self.config.host,
            port=self.config.port,
            graph=self.config.graph_name,
        )

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self):
        """Establish connection to FalkorDB."""
        if self._connected:
            log.debug("falkordb_already_connected")
            return

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._connect_sync)

        log.info(
            "falkordb_connected",
            host=self.config.host,
            port=self.config.port,
            graph=self.config.graph_name,
        )

    def _connect_sync(self):
        self._db = FalkorDB(
            host=self.config.host,
            port=self.config.port,
            password=self.config.password,
        )
        self._graph = self._db.select_graph(self.config.graph_name)
        self._connected = True

    async def close(self):
        """Close connection."""
        if not self._connected:
            return

        # The underlying redis pool is released with the FalkorDB object
        self._connected = False
        self._db = None
        self._graph = None
        log.info("falkordb_disconnected")

    async def query(
        self,
        cypher: str,
        params: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """
        Execute a read-only Cypher query.

        Args:
            cypher: Cypher query string
            params: Query parameters

        Returns:
            List of result records as dicts keyed by column alias

        Raises:
            RuntimeError: If connect() has not been called
        """
        if not self._connected:
            raise RuntimeError("Not connected to FalkorDB. Call connect() first.")

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            self._query_sync,
            cypher,
            params or {}
        )

    def _query_sync(self, cypher: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        try:
            result = self._graph.ro_query(cypher, params, timeout=self.config.timeout_ms)
        except Exception as e:
            log.error("falkordb_query_failed", cypher=cypher[:100], error=str(e))
            raise

        records = []
        if result.result_set:
            # Header entries are [column_type, alias]
            headers = [
                header[1] if len(header) > 1 else f"col_{i}"
                for i, header in enumerate(result.header)
            ]
            for row in result.result_set:
                records.append(dict(zip(headers, row)))

        log.debug(
            "falkordb_query",
            cypher=cypher[:100],
            params=list(params.keys()),
            records=len(records),
        )
        return records

    async def health_check(self) -> bool:
        """Return True if FalkorDB is reachable."""
        try:
            if not self._connected:
                await self.connect()
            await self.query("RETURN 1")
            return True
        except Exception as e:
            log.error("falkordb_health_check_failed", error=str(e))
            return False
