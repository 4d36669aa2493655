"""Tools the model can call mid-conversation."""

from chat_gateway.services.tools.registry import ToolDefinition, ToolHandler, ToolRegistry
from chat_gateway.services.tools.web_fetch import WebFetchSanitizer
from chat_gateway.services.tools.web_search import SearchResult, WebSearchTool

__all__ = [
    "SearchResult",
    "ToolDefinition",
    "ToolHandler",
    "ToolRegistry",
    "WebFetchSanitizer",
    "WebSearchTool",
]
