"""web_search tool: search API results, optionally enriched with page text."""

import asyncio
import json
from dataclasses import asdict, dataclass
from typing import Any

import httpx
from loguru import logger

from chat_gateway.errors import ToolExecutionError
from chat_gateway.services.tools.registry import ToolDefinition
from chat_gateway.services.tools.web_fetch import WebFetchSanitizer

TOOL_NAME = "web_search"
MAX_RESULTS_LIMIT = 10
# Brave rejects count above 20
SEARCH_COUNT_LIMIT = 20

TOOL_DESCRIPTION = (
    "Search the web for current information. Use this for recent events, "
    "prices, releases, schedules or anything that may have changed after "
    "your training data. Returns titles, URLs, snippets and page text."
)

TOOL_PARAMETERS: dict[str, Any] = {
    "type": "object",
    "properties": {
        "query": {"type": "string", "description": "The search query"},
        "max_results": {
            "type": "integer",
            "description": f"Number of results to return (1-{MAX_RESULTS_LIMIT})",
            "minimum": 1,
            "maximum": MAX_RESULTS_LIMIT,
        },
        "fetch_content": {
            "type": "boolean",
            "description": "Fetch the text of each result page (default true)",
        },
    },
    "required": ["query"],
}


@dataclass
class SearchResult:
    """One search hit. `content` is None when the page was not fetched."""

    title: str
    url: str
    description: str
    content: str | None = None

    def to_dict(self) -> dict[str, str]:
        return {k: v for k, v in asdict(self).items() if v is not None}


def normalize_url(url: str) -> str:
    """Key used to de-duplicate results.

    Scheme and host compare case-insensitively; the path keeps its case.
    Query string, fragment and trailing slash are ignored.
    """
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL:
        return url.split("?")[0].split("#")[0].rstrip("/")
    port = f":{parsed.port}" if parsed.port else ""
    return f"{parsed.scheme}://{parsed.host}{port}{parsed.path}".rstrip("/")


def deduplicate_results(results: list[SearchResult]) -> list[SearchResult]:
    seen: set[str] = set()
    unique = []
    for result in results:
        key = normalize_url(result.url)
        if key not in seen:
            seen.add(key)
            unique.append(result)
    return unique


class WebSearchTool:
    """Queries the Brave web search API.

    Args:
        client: Shared HTTP client for the search API
        api_key: Search API key
        fetcher: Page fetcher used to enrich results
        search_url: Search endpoint
        default_max_results: Result count when the model does not choose one
        fetch_concurrency: Page fetches allowed to run at once
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        fetcher: WebFetchSanitizer,
        search_url: str = "https://api.search.brave.com/res/v1/web/search",
        default_max_results: int = 3,
        fetch_concurrency: int = 3,
    ):
        self._client = client
        self._api_key = api_key  # Keep private, don't log
        self._fetcher = fetcher
        self.search_url = search_url
        self.default_max_results = default_max_results
        self.fetch_concurrency = fetch_concurrency

    async def search(
        self,
        query: str,
        max_results: int | None = None,
        fetch_content: bool = True,
    ) -> list[SearchResult]:
        """Search and optionally enrich each result with its page text.

        Args:
            query: Search query
            max_results: Results to return, clamped to 1..10
            fetch_content: Whether to fetch each result page

        Returns:
            Ordered results. A page that could not be fetched leaves that
            result's content as None.

        Raises:
            ToolExecutionError: If the query is empty or the search API fails
        """
        query = query.strip()
        if not query:
            raise ToolExecutionError("query must not be empty", tool=TOOL_NAME)
        if max_results is None:
            max_results = self.default_max_results
        limit = max(1, min(max_results, MAX_RESULTS_LIMIT))

        results = deduplicate_results(await self._query(query, limit))[:limit]
        logger.info(f"Web search returned {len(results)} result(s)")

        if fetch_content and results:
            await self._enrich(results)
        return results

    async def _query(self, query: str, limit: int) -> list[SearchResult]:
        try:
            response = await self._client.get(
                self.search_url,
                params={"q": query, "count": min(limit * 2, SEARCH_COUNT_LIMIT)},
                headers={
                    "Accept": "application/json",
                    "X-Subscription-Token": self._api_key,
                },
            )
        except httpx.HTTPError as e:
            raise ToolExecutionError(
                f"search API is unreachable ({type(e).__name__})", tool=TOOL_NAME
            )
        if response.status_code != 200:
            raise ToolExecutionError(
                f"search API returned HTTP {response.status_code}", tool=TOOL_NAME
            )

        try:
            data = response.json()
        except ValueError:
            raise ToolExecutionError("search API returned invalid JSON", tool=TOOL_NAME)

        web = data.get("web") if isinstance(data, dict) else None
        hits = (web or {}).get("results") or []
        return [
            SearchResult(
                title=(hit.get("title") or "").strip(),
                url=(hit.get("url") or "").strip(),
                description=(hit.get("description") or "").strip(),
            )
            for hit in hits
            if hit.get("url")
        ]

    async def _enrich(self, results: list[SearchResult]) -> None:
        semaphore = asyncio.Semaphore(self.fetch_concurrency)

        async def enrich_one(result: SearchResult) -> None:
            async with semaphore:
                result.content = await self._fetcher.fetch(result.url)

        await asyncio.gather(*(enrich_one(r) for r in results))
        fetched = sum(1 for r in results if r.content)
        logger.debug(f"Fetched {fetched}/{len(results)} result page(s)")

    async def handle(self, arguments: dict[str, Any]) -> str:
        """Tool handler: run a search and format it for the model."""
        query = arguments.get("query")
        if not isinstance(query, str):
            raise ToolExecutionError("query must be a string", tool=TOOL_NAME)
        max_results = arguments.get("max_results")
        if not isinstance(max_results, int) or isinstance(max_results, bool):
            max_results = None
        fetch_content = arguments.get("fetch_content", True) is not False

        results = await self.search(query, max_results, fetch_content)
        if not results:
            return f"No web results found for '{query}'."
        return json.dumps([r.to_dict() for r in results], ensure_ascii=False)

    def as_tool(self) -> ToolDefinition:
        return ToolDefinition(
            name=TOOL_NAME,
            description=TOOL_DESCRIPTION,
            handler=self.handle,
            parameters=TOOL_PARAMETERS,
        )
