"""
Tools invoked by tasks, looked up by name in a ToolRegistry.
"""

from .base import BaseTool, Tool, ToolRegistry, ToolResult, validate_params, with_retry
from .confluence import (
    ConfluenceLoaderTool,
    ConfluenceSearchTool,
    ContentExtractionError,
    cosine_similarity,
    create_confluence_tools,
)
from .html_extract import PageContent, extract_page_content

__all__ = [
    "BaseTool",
    "Tool",
    "ToolRegistry",
    "ToolResult",
    "validate_params",
    "with_retry",
    "ConfluenceLoaderTool",
    "ConfluenceSearchTool",
    "ContentExtractionError",
    "cosine_similarity",
    "create_confluence_tools",
    "PageContent",
    "extract_page_content",
]
