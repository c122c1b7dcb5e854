"""
Test Cohere Reranker
====================

Response validation and the never-raise contract of CohereReranker, using a
fake aiohttp session.
"""

import asyncio

import aiohttp
import pytest

from immirag.storage.retriever.reranker import (
    CohereReranker,
    RerankedItem,
    RerankError,
    RerankerConfig,
    parse_rerank_results,
)


class FakeResponse:
    def __init__(self, status=200, payload=None, body=""):
        self.status = status
        self._payload = payload
        self._body = body

    async def json(self):
        return self._payload

    async def text(self):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    def __init__(self, response=None, error=None, delay=0.0):
        self.response = response
        self.error = error
        self.delay = delay
        self.closed = False
        self.calls = []

    def post(self, url, json=None, headers=None):
        self.calls.append({"url": url, "json": json, "headers": headers})
        if self.error is not None:
            raise self.error
        if self.delay:
            return _Delayed(self.response, self.delay)
        return self.response

    async def close(self):
        self.closed = True


class _Delayed:
    def __init__(self, response, delay):
        self.response = response
        self.delay = delay

    async def __aenter__(self):
        await asyncio.sleep(self.delay)
        return self.response

    async def __aexit__(self, exc_type, exc, tb):
        return False


@pytest.fixture
def reranker_config():
    return RerankerConfig(
        api_key="test-key",
        model="rerank-v3.5",
        base_url="https://api.cohere.test/",
        timeout_ms=200,
    )


DOCUMENTS = ["passage a", "passage b", "passage c", "passage d"]


class TestRerankerConfig:

    def test_configured_with_key(self, reranker_config):
        assert reranker_config.is_configured is True

    def test_not_configured_without_key(self):
        assert RerankerConfig(api_key=None).is_configured is False
        assert RerankerConfig(api_key="").is_configured is False


class TestParseRerankResults:

    def test_sorted_and_truncated(self):
        data = {"results": [
            {"index": 2, "relevance_score": 0.4},
            {"index": 0, "relevance_score": 0.9},
            {"index": 3, "relevance_score": 0.7},
        ]}

        items = parse_rerank_results(data, document_count=4, top_n=2)

        assert items == [
            RerankedItem(index=0, relevance_score=0.9),
            RerankedItem(index=3, relevance_score=0.7),
        ]

    def test_empty_ranking_is_an_error(self):
        with pytest.raises(RerankError, match="no results"):
            parse_rerank_results({"results": []}, document_count=4, top_n=2)

    @pytest.mark.parametrize("data", [
        {},
        {"results": None},
        {"results": [{"index": 0}]},
        {"results": [{"index": "x", "relevance_score": 0.5}]},
        ["not", "a", "dict"],
    ])
    def test_malformed_body(self, data):
        with pytest.raises(RerankError, match="malformed"):
            parse_rerank_results(data, document_count=4, top_n=2)

    def test_index_out_of_range(self):
        data = {"results": [{"index": 4, "relevance_score": 0.5}]}

        with pytest.raises(RerankError, match="out of range"):
            parse_rerank_results(data, document_count=4, top_n=2)

    def test_duplicate_index(self):
        data = {"results": [
            {"index": 1, "relevance_score": 0.5},
            {"index": 1, "relevance_score": 0.4},
        ]}

        with pytest.raises(RerankError, match="duplicate"):
            parse_rerank_results(data, document_count=4, top_n=2)


class TestCohereReranker:

    @pytest.mark.asyncio
    async def test_successful_rerank(self, reranker_config):
        session = FakeSession(FakeResponse(payload={"results": [
            {"index": 3, "relevance_score": 0.88},
            {"index": 1, "relevance_score": 0.52},
        ]}))
        reranker = CohereReranker(reranker_config, session=session)

        outcome = await reranker.rerank("Express Entry requirements", DOCUMENTS, top_n=2)

        assert outcome.success is True
        assert [item.index for item in outcome.items] == [3, 1]
        call = session.calls[0]
        assert call["url"] == "https://api.cohere.test/v2/rerank"
        assert call["headers"]["Authorization"] == "Bearer test-key"
        assert call["json"] == {
            "model": "rerank-v3.5",
            "query": "Express Entry requirements",
            "documents": DOCUMENTS,
            "top_n": 2,
        }

    @pytest.mark.asyncio
    async def test_top_n_capped_at_document_count(self, reranker_config):
        session = FakeSession(FakeResponse(payload={"results": [{"index": 0, "relevance_score": 0.5}]}))
        reranker = CohereReranker(reranker_config, session=session)

        await reranker.rerank("query", ["only one"], top_n=5)

        assert session.calls[0]["json"]["top_n"] == 1

    @pytest.mark.asyncio
    async def test_unconfigured_makes_no_request(self):
        session = FakeSession(FakeResponse(payload={"results": []}))
        reranker = CohereReranker(RerankerConfig(api_key=None), session=session)

        outcome = await reranker.rerank("query", DOCUMENTS, top_n=2)

        assert outcome.success is False
        assert outcome.error == "reranker not configured"
        assert session.calls == []

    @pytest.mark.asyncio
    async def test_no_documents(self, reranker_config):
        reranker = CohereReranker(reranker_config, session=FakeSession())

        outcome = await reranker.rerank("query", [], top_n=2)

        assert outcome.success is False

    @pytest.mark.asyncio
    async def test_http_error_is_failed_outcome(self, reranker_config):
        session = FakeSession(FakeResponse(status=429, body="rate limited"))
        reranker = CohereReranker(reranker_config, session=session)

        outcome = await reranker.rerank("query", DOCUMENTS, top_n=2)

        assert outcome.success is False
        assert "HTTP 429" in outcome.error

    @pytest.mark.asyncio
    async def test_connection_error_is_failed_outcome(self, reranker_config):
        session = FakeSession(error=aiohttp.ClientConnectionError("connection refused"))
        reranker = CohereReranker(reranker_config, session=session)

        outcome = await reranker.rerank("query", DOCUMENTS, top_n=2)

        assert outcome.success is False
        assert "connection refused" in outcome.error

    @pytest.mark.asyncio
    async def test_timeout_is_failed_outcome(self, reranker_config):
        session = FakeSession(
            FakeResponse(payload={"results": [{"index": 0, "relevance_score": 0.5}]}),
            delay=2.0,
        )
        reranker = CohereReranker(reranker_config, session=session)

        outcome = await reranker.rerank("query", DOCUMENTS, top_n=2)

        assert outcome.success is False
        assert outcome.error.startswith("timeout")

    @pytest.mark.asyncio
    async def test_malformed_response_is_failed_outcome(self, reranker_config):
        session = FakeSession(FakeResponse(payload={"unexpected": True}))
        reranker = CohereReranker(reranker_config, session=session)

        outcome = await reranker.rerank("query", DOCUMENTS, top_n=2)

        assert outcome.success is False
        assert "malformed" in outcome.error

    @pytest.mark.asyncio
    async def test_close_closes_session(self, reranker_config):
        session = FakeSession()
        reranker = CohereReranker(reranker_config, session=session)

        await reranker.close()

        assert session.closed is True
