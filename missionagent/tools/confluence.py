"""
Confluence tools - load wiki pages into the knowledge base and search them.

The loader fetches a page, extracts its readable content, embeds it and
stores a knowledge entry. The search tool embeds a natural-language query
and ranks the stored confluence entries by cosine similarity.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

import httpx
import numpy as np

from ..core.config_manager import get_config
from ..missions.mission_types import KnowledgeSourceType
from .base import BaseTool, ToolResult, with_retry
from .html_extract import PageContent, extract_page_content

if TYPE_CHECKING:
    from ..execution.context import ExecutionContext
    from ..missions.mission_store import MissionStore
    from ..models.reasoning_client import ReasoningClient

logger = logging.getLogger(__name__)


class ContentExtractionError(Exception):
    """Raised when a page cannot be fetched or has no readable content."""


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 for mismatched or zero vectors."""
    if not a or not b or len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def _log(ctx: Optional["ExecutionContext"], level: str, message: str) -> None:
    if ctx is not None:
        ctx.logger.log(level, message)
    else:
        getattr(logger, "warning" if level == "warn" else level)(f"[Confluence] {message}")


class ConfluenceLoaderTool(BaseTool):
    """
    Fetch a Confluence page and index it.

    Page fetches are retried with capped exponential backoff and cached in
    the execution context cache for the duration of a mission run.
    """

    name = "confluence_loader"
    description = "Load and index content from Confluence pages"
    parameters = {
        "url": {"type": "string", "required": True, "description": "Confluence page URL"},
        "include_attachments": {
            "type": "boolean",
            "required": False,
            "description": "Whether to include attachments",
        },
    }
    required_params = ("url",)

    def __init__(
        self,
        store: "MissionStore",
        embedder: "ReasoningClient",
        user_agent: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        retry_max_delay: Optional[float] = None,
    ):
        tools_config = get_config().tools
        self.store = store
        self.embedder = embedder
        self.user_agent = user_agent or tools_config.user_agent
        self.timeout = tools_config.fetch_timeout if timeout is None else timeout
        self.max_retries = tools_config.max_retries if max_retries is None else max_retries
        self.retry_delay = tools_config.retry_delay if retry_delay is None else retry_delay
        self.retry_max_delay = tools_config.retry_max_delay if retry_max_delay is None else retry_max_delay

    async def execute(self, params: Dict[str, Any], ctx: Optional["ExecutionContext"] = None) -> ToolResult:
        error = self.validate_params(params)
        if error:
            return self.create_result(False, error=error)

        url = str(params["url"])
        include_attachments = bool(
            params.get("include_attachments", params.get("includeAttachments", False))
        )
        _log(ctx, "info", f"Loading Confluence page: {url}")

        try:
            content = await self.load_page(url, ctx)
            embedding = await self.embedder.embed(content.text)
            entry = self.store.add_knowledge_entry(
                source_type=KnowledgeSourceType.CONFLUENCE.value,
                source_url=url,
                title=content.title,
                content=content.text,
                summary=content.summary,
                tags=content.tags,
                embedding=embedding,
                metadata={
                    "include_attachments": include_attachments,
                    "word_count": content.word_count,
                },
            )
        except Exception as e:
            _log(ctx, "error", f"Failed to load Confluence page {url}: {e}")
            return self.create_result(False, error=str(e))

        _log(ctx, "info", f"Successfully indexed Confluence page: {content.title}")
        return self.create_result(True, {
            "id": entry.id,
            "title": content.title,
            "word_count": content.word_count,
            "url": url,
        })

    async def load_page(self, url: str, ctx: Optional["ExecutionContext"] = None) -> PageContent:
        """
        Fetch and extract a page, using the run cache when available.

        Raises:
            ContentExtractionError: If the fetch fails or the page has no text
        """
        cache_key = f"confluence:page:{url}"
        if ctx is not None:
            cached = ctx.cache.get(cache_key)
            if cached is not None:
                _log(ctx, "debug", f"Using cached page content for {url}")
                return cached

        try:
            html = await with_retry(
                lambda: self._fetch(url),
                max_retries=self.max_retries,
                base_delay=self.retry_delay,
                max_delay=self.retry_max_delay,
                retry_on=(httpx.TransportError, httpx.HTTPStatusError),
            )
        except httpx.HTTPError as e:
            raise ContentExtractionError(f"Failed to extract content from {url}: {e}") from e

        content = extract_page_content(html)
        if not content.text:
            raise ContentExtractionError(f"No readable content found at {url}")

        if ctx is not None:
            ctx.cache.set(cache_key, content)
        return content

    async def _fetch(self, url: str) -> str:
        async with httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent},
            follow_redirects=True,
        ) as client:
            response = await client.get(url)
            response.raise_for_status()
            return response.text


class ConfluenceSearchTool(BaseTool):
    """Semantic search over indexed Confluence content."""

    name = "confluence_search"
    description = "Search indexed Confluence content using natural language"
    parameters = {
        "query": {"type": "string", "required": True, "description": "Natural language search query"},
        "limit": {"type": "number", "required": False, "description": "Maximum number of results to return"},
    }
    required_params = ("query",)

    def __init__(
        self,
        store: "MissionStore",
        embedder: "ReasoningClient",
        similarity_threshold: Optional[float] = None,
        default_limit: Optional[int] = None,
    ):
        tools_config = get_config().tools
        self.store = store
        self.embedder = embedder
        self.similarity_threshold = (
            tools_config.similarity_threshold if similarity_threshold is None else similarity_threshold
        )
        self.default_limit = tools_config.default_search_limit if default_limit is None else default_limit

    async def execute(self, params: Dict[str, Any], ctx: Optional["ExecutionContext"] = None) -> ToolResult:
        error = self.validate_params(params)
        if error:
            return self.create_result(False, error=error)

        query = str(params["query"])
        try:
            limit = int(params.get("limit") or self.default_limit)
        except (TypeError, ValueError):
            return self.create_result(False, error=f"Invalid limit: {params.get('limit')!r}")

        _log(ctx, "info", f"Searching Confluence content for: {query}")

        try:
            query_embedding = await self._embed_query(query, ctx)
            results = self.rank(query_embedding, limit)
        except Exception as e:
            _log(ctx, "error", f"Failed to search Confluence content: {e}")
            return self.create_result(False, error=str(e))

        _log(ctx, "info", f"Found {len(results)} relevant documents")
        return self.create_result(True, {
            "query": query,
            "results": results,
            "total_found": len(results),
        })

    def rank(self, query_embedding: Sequence[float], limit: int) -> List[Dict[str, Any]]:
        """Score stored confluence entries, keep those above the threshold, best first."""
        scored = []
        for entry in self.store.list_knowledge_entries(KnowledgeSourceType.CONFLUENCE.value):
            similarity = cosine_similarity(query_embedding, entry.embedding or [])
            if similarity > self.similarity_threshold:
                scored.append((similarity, entry))

        scored.sort(key=lambda item: item[0], reverse=True)
        return [
            {
                "id": entry.id,
                "title": entry.title,
                "summary": entry.summary,
                "url": entry.source_url,
                "similarity": round(similarity, 4),
                "tags": entry.tags,
            }
            for similarity, entry in scored[:max(0, limit)]
        ]

    async def _embed_query(self, query: str, ctx: Optional["ExecutionContext"]) -> List[float]:
        cache_key = f"confluence:query:{query}"
        if ctx is not None:
            cached = ctx.cache.get(cache_key)
            if cached is not None:
                return cached
        embedding = await self.embedder.embed(query)
        if ctx is not None:
            ctx.cache.set(cache_key, embedding)
        return embedding


def create_confluence_tools(store: "MissionStore", embedder: "ReasoningClient") -> List[BaseTool]:
    """Build the loader and search tools sharing one store and embedder."""
    return [
        ConfluenceLoaderTool(store, embedder),
        ConfluenceSearchTool(store, embedder),
    ]
