"""
Tests for the Confluence loader and search tools.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from missionagent.tools.base import ToolRegistry, with_retry
from missionagent.tools.confluence import (
    ConfluenceLoaderTool,
    ConfluenceSearchTool,
    cosine_similarity,
    create_confluence_tools,
)

PAGE = """
<html>
  <head><title>Onboarding Guide</title><meta name="keywords" content="onboarding, HR"></head>
  <body>
    <nav>Home | Spaces</nav>
    <div id="main-content">
      <h1>Welcome</h1>
      <p>Read this before your first day.</p>
      <script>track()</script>
    </div>
  </body>
</html>
"""


class AsyncContextManager:
    """Helper class for mocking async context managers."""

    def __init__(self, mock_client):
        self.mock_client = mock_client

    async def __aenter__(self):
        return self.mock_client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


def _http_client(get):
    mock_client = MagicMock()
    mock_client.get = get
    return AsyncContextManager(mock_client)


def _page_response(html):
    response = MagicMock()
    response.text = html
    response.raise_for_status = MagicMock()
    return response


@pytest.fixture
def loader(store, reasoning):
    return ConfluenceLoaderTool(store, reasoning, max_retries=2, retry_delay=0, retry_max_delay=0)


@pytest.fixture
def search(store, reasoning):
    return ConfluenceSearchTool(store, reasoning, similarity_threshold=0.3, default_limit=5)


class TestCosineSimilarity:
    def test_identical_vectors(self):
        assert cosine_similarity([1, 2, 3], [1, 2, 3]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)

    @pytest.mark.parametrize("a, b", [([], [1.0]), ([1.0, 2.0], [1.0]), ([0.0, 0.0], [1.0, 1.0])])
    def test_degenerate_vectors_score_zero(self, a, b):
        assert cosine_similarity(a, b) == 0.0


class TestConfluenceLoader:
    """Tests for ConfluenceLoaderTool."""

    @pytest.mark.asyncio
    async def test_loads_and_indexes_page(self, loader, store, reasoning, ctx):
        get = AsyncMock(return_value=_page_response(PAGE))

        with patch("httpx.AsyncClient", return_value=_http_client(get)):
            result = await loader.execute({"url": "https://wiki/onboarding"}, ctx)

        assert result.success
        assert result.data["title"] == "Onboarding Guide"
        assert result.data["url"] == "https://wiki/onboarding"
        entries = store.list_knowledge_entries("confluence")
        assert len(entries) == 1
        entry = entries[0]
        assert entry.id == result.data["id"]
        assert entry.content == "Welcome Read this before your first day."
        assert entry.embedding == [1.0, 0.0, 0.0]
        assert entry.tags == ["welcome", "onboarding", "hr"]
        assert entry.metadata["include_attachments"] is False
        reasoning.embed.assert_awaited_once_with(entry.content)

    @pytest.mark.asyncio
    async def test_missing_url_fails_without_fetching(self, loader, ctx):
        with patch("httpx.AsyncClient") as mock_client_class:
            result = await loader.execute({}, ctx)

        assert not result.success
        assert result.error == "Missing required parameter: url"
        mock_client_class.assert_not_called()

    @pytest.mark.asyncio
    async def test_fetch_is_retried_then_reported(self, loader, store, ctx):
        get = AsyncMock(side_effect=httpx.ConnectError("refused"))

        with patch("httpx.AsyncClient", return_value=_http_client(get)):
            result = await loader.execute({"url": "https://wiki/down"}, ctx)

        assert not result.success
        assert "Failed to extract content from https://wiki/down" in result.error
        assert get.await_count == 2
        assert store.list_knowledge_entries() == []

    @pytest.mark.asyncio
    async def test_page_without_text_fails(self, loader, ctx):
        get = AsyncMock(return_value=_page_response("<html><body><script>x()</script></body></html>"))

        with patch("httpx.AsyncClient", return_value=_http_client(get)):
            result = await loader.execute({"url": "https://wiki/empty"}, ctx)

        assert not result.success
        assert "No readable content" in result.error

    @pytest.mark.asyncio
    async def test_page_fetch_is_cached_for_the_run(self, loader, store, ctx):
        get = AsyncMock(return_value=_page_response(PAGE))

        with patch("httpx.AsyncClient", return_value=_http_client(get)):
            await loader.execute({"url": "https://wiki/onboarding"}, ctx)
            await loader.execute({"url": "https://wiki/onboarding"}, ctx)

        assert get.await_count == 1
        assert len(store.list_knowledge_entries()) == 2

    @pytest.mark.asyncio
    async def test_embedding_failure_is_a_tool_failure(self, loader, reasoning, ctx):
        reasoning.embed.side_effect = RuntimeError("embedding service down")
        get = AsyncMock(return_value=_page_response(PAGE))

        with patch("httpx.AsyncClient", return_value=_http_client(get)):
            result = await loader.execute({"url": "https://wiki/onboarding"}, ctx)

        assert not result.success
        assert result.error == "embedding service down"


class TestConfluenceSearch:
    """Tests for ConfluenceSearchTool."""

    def _index(self, store):
        store.add_knowledge_entry("confluence", "Exact", "c", embedding=[1.0, 0.0, 0.0])
        store.add_knowledge_entry("confluence", "Close", "c", embedding=[0.8, 0.6, 0.0])
        store.add_knowledge_entry("confluence", "Unrelated", "c", embedding=[0.0, 1.0, 0.0])
        store.add_knowledge_entry("confluence", "No vector", "c")
        store.add_knowledge_entry("web", "Other source", "c", embedding=[1.0, 0.0, 0.0])

    @pytest.mark.asyncio
    async def test_ranks_by_similarity_above_threshold(self, search, store, ctx):
        self._index(store)

        result = await search.execute({"query": "onboarding"}, ctx)

        assert result.success
        assert result.data["query"] == "onboarding"
        assert [r["title"] for r in result.data["results"]] == ["Exact", "Close"]
        assert [r["similarity"] for r in result.data["results"]] == [1.0, 0.8]
        assert result.data["total_found"] == 2

    @pytest.mark.asyncio
    async def test_limit(self, search, store, ctx):
        self._index(store)

        result = await search.execute({"query": "onboarding", "limit": 1}, ctx)

        assert [r["title"] for r in result.data["results"]] == ["Exact"]

    def test_threshold_is_exclusive(self, store):
        store.add_knowledge_entry("confluence", "Edge", "c", embedding=[0.3, 0.0])
        tool = ConfluenceSearchTool(store, MagicMock(), similarity_threshold=1.0)

        assert tool.rank([1.0, 0.0], 5) == []

    @pytest.mark.asyncio
    async def test_invalid_limit(self, search, ctx):
        result = await search.execute({"query": "x", "limit": "many"}, ctx)

        assert not result.success
        assert "Invalid limit" in result.error

    @pytest.mark.asyncio
    async def test_missing_query(self, search, ctx):
        result = await search.execute({"limit": 3}, ctx)

        assert result.error == "Missing required parameter: query"

    @pytest.mark.asyncio
    async def test_query_embedding_is_cached(self, search, reasoning, ctx):
        await search.execute({"query": "same"}, ctx)
        await search.execute({"query": "same"}, ctx)

        reasoning.embed.assert_awaited_once_with("same")

    @pytest.mark.asyncio
    async def test_works_without_context(self, search, store):
        self._index(store)

        result = await search.execute({"query": "onboarding"})

        assert result.data["total_found"] == 2


class TestWithRetry:
    """Tests for the shared retry helper."""

    @pytest.mark.asyncio
    async def test_backoff_is_capped(self):
        operation = AsyncMock(side_effect=[ValueError("1"), ValueError("2"), ValueError("3"), "ok"])

        with patch("missionagent.tools.base.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            result = await with_retry(operation, max_retries=4, base_delay=1.0, max_delay=3.0)

        assert result == "ok"
        assert [c.args[0] for c in mock_sleep.await_args_list] == [1.0, 2.0, 3.0]

    @pytest.mark.asyncio
    async def test_last_error_propagates(self):
        operation = AsyncMock(side_effect=ValueError("always"))

        with patch("missionagent.tools.base.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(ValueError, match="always"):
                await with_retry(operation, max_retries=2)

        assert operation.await_count == 2

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        operation = AsyncMock(side_effect=KeyError("nope"))

        with pytest.raises(KeyError):
            await with_retry(operation, max_retries=3, retry_on=(ValueError,))

        assert operation.await_count == 1


def test_factory_builds_both_tools(store, reasoning):
    registry = ToolRegistry(create_confluence_tools(store, reasoning))

    assert registry.names() == ["confluence_loader", "confluence_search"]
    assert registry.describe()[0]["parameters"]["url"]["required"] is True
