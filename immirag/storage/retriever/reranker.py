"""
Reranker Client
===============

Cross-encoder reranking of vector-search candidates through the Cohere
rerank API.

The reranker is a best-effort quality step. Its boundary never raises:
every call returns a RerankOutcome, either ok (ranked items) or fail (reason),
and the orchestrator branches on it.

Environment Variables:
    COHERE_API_KEY: API key; the reranker is "configured" only when set
    COHERE_RERANK_MODEL: Model name (default: rerank-v3.5)
    COHERE_BASE_URL: API base URL (default: https://api.cohere.com)
    COHERE_TIMEOUT_MS: Request timeout in ms (default: 5000)
"""

import asyncio
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp
import structlog

log = structlog.get_logger()


@dataclass
class RerankerConfig:
    api_key: Optional[str] = field(default_factory=lambda: os.environ.get("COHERE_API_KEY", "") or None)
    model: str = field(default_factory=lambda: os.environ.get("COHERE_RERANK_MODEL", "rerank-v3.5"))
    base_url: str = field(default_factory=lambda: os.environ.get("COHERE_BASE_URL", "https://api.cohere.com"))
    timeout_ms: int = field(default_factory=lambda: int(os.environ.get("COHERE_TIMEOUT_MS", 5000)))

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class RerankedItem:
    """One reranked candidate: position in the input list and its relevance."""
    index: int
    relevance_score: float


@dataclass
class RerankOutcome:
    """
    Result of a rerank call.

    Attributes:
        success: True when `items` holds a usable ranking
        items: Ranked candidates, most relevant first
        error: Failure reason when success is False
    """
    success: bool
    items: List[RerankedItem] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def ok(cls, items: List[RerankedItem]) -> "RerankOutcome":
        return cls(success=True, items=items)

    @classmethod
    def fail(cls, error: str) -> "RerankOutcome":
        return cls(success=False, error=error)


class RerankError(Exception):
    """Provider answered with an error status or an unusable body."""


class BaseReranker(ABC):
    """Contract consumed by the retrieval orchestrator."""

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """True if the reranker can be called (credentials present)."""

    @abstractmethod
    async def rerank(self, query: str, documents: List[str], top_n: int) -> RerankOutcome:
        """
        Rank `documents` against `query`.

        Must not raise: provider failures are returned as RerankOutcome.fail.
        """


def parse_rerank_results(data: Any, document_count: int, top_n: int) -> List[RerankedItem]:
    """
    Validate a Cohere rerank response body.

    Raises:
        RerankError: Missing fields, out-of-range or duplicate indices,
            non-numeric scores or an empty ranking
    """
    try:
        results = data["results"]
        items = [
            RerankedItem(index=int(r["index"]), relevance_score=float(r["relevance_score"]))
            for r in results
        ]
    except (KeyError, TypeError, ValueError) as e:
        raise RerankError(f"malformed rerank response: {e!r}") from e

    if not items:
        raise RerankError("rerank response contains no results")

    seen = set()
    for item in items:
        if not 0 <= item.index < document_count:
            raise RerankError(f"rerank index {item.index} out of range (0..{document_count - 1})")
        if item.index in seen:
            raise RerankError(f"duplicate rerank index {item.index}")
        seen.add(item.index)

    items.sort(key=lambda item: item.relevance_score, reverse=True)
    return items[:top_n]


class CohereReranker(BaseReranker):
    """
    Cohere /v2/rerank client.

    Example:
        >>> reranker = CohereReranker(RerankerConfig(api_key="..."))
        >>> outcome = await reranker.rerank("Express Entry requirements", texts, top_n=5)
        >>> if outcome.success:
        ...     print([item.index for item in outcome.items])
        >>> await reranker.close()
    """

    def __init__(
        self,
        config: Optional[RerankerConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.config = config or RerankerConfig()
        self.session = session

        log.info(
            "cohere_reranker_initialized",
            model=self.config.model,
            configured=self.config.is_configured,
        )

    @property
    def is_configured(self) -> bool:
        return self.config.is_configured

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout_ms / 1000)
            )
        return self.session

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()

    async def _request(self, payload: Dict[str, Any]) -> Any:
        session = await self._get_session()
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        url = f"{self.config.base_url.rstrip('/')}/v2/rerank"

        async with session.post(url, json=payload, headers=headers) as response:
            if response.status != 200:
                body = await response.text()
                raise RerankError(f"Cohere returned HTTP {response.status}: {body[:200]}")
            return await response.json()

    async def rerank(self, query: str, documents: List[str], top_n: int) -> RerankOutcome:
        if not self.is_configured:
            return RerankOutcome.fail("reranker not configured")
        if not documents:
            return RerankOutcome.fail("no documents to rerank")

        payload = {
            "model": self.config.model,
            "query": query,
            "documents": documents,
            "top_n": min(top_n, len(documents)),
        }
        timeout = self.config.timeout_ms / 1000

        try:
            data = await asyncio.wait_for(self._request(payload), timeout=timeout)
            items = parse_rerank_results(data, len(documents), top_n)
        except asyncio.TimeoutError:
            log.warning("rerank_timeout", timeout_s=timeout, documents=len(documents))
            return RerankOutcome.fail(f"timeout after {timeout:.1f}s")
        except (aiohttp.ClientError, RerankError, ValueError) as e:
            log.warning("rerank_failed", error=str(e), documents=len(documents))
            return RerankOutcome.fail(str(e))

        log.debug("rerank_completed", documents=len(documents), returned=len(items))
        return RerankOutcome.ok(items)
