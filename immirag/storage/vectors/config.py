"""
Qdrant Configuration
====================

Environment Variables:
    QDRANT_HOST: Server host (default: localhost)
    QDRANT_PORT: Server port (default: 6333)
    QDRANT_COLLECTION: Passage collection (default: immirag_test_chunks)
    QDRANT_API_KEY: API key for hosted clusters (default: empty)
    QDRANT_TIMEOUT_MS: Request timeout in ms (default: 10000)
"""

import os
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class QdrantConfig:
    """
    Qdrant connection settings for the passage index.

    Attributes:
        host: Qdrant host
        port: Qdrant REST port
        collection_name: Collection holding passage vectors and payloads
        api_key: Optional API key
        timeout_ms: Client request timeout in milliseconds
    """
    host: str = field(default_factory=lambda: os.environ.get("QDRANT_HOST", "localhost"))
    port: int = field(default_factory=lambda: int(os.environ.get("QDRANT_PORT", 6333)))
    collection_name: str = field(
        default_factory=lambda: os.environ.get("QDRANT_COLLECTION", "immirag_test_chunks")
    )
    api_key: Optional[str] = field(default_factory=lambda: os.environ.get("QDRANT_API_KEY", "") or None)
    timeout_ms: int = field(default_factory=lambda: int(os.environ.get("QDRANT_TIMEOUT_MS", 10000)))
