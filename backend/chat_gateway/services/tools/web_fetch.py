"""Fetch a web page and reduce it to bounded plain text."""

import re

import httpx
from bs4 import BeautifulSoup
from loguru import logger

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)

# Removed before any text is extracted
NOISE_TAGS = ("script", "style", "nav", "footer", "header", "iframe", "noscript")

# First match wins; the whole <body> is the fallback
CONTENT_SELECTORS = (
    "article",
    "main",
    "[role=main]",
    ".content",
    "#content",
    ".post-content",
    ".entry-content",
    ".article-body",
)

_WHITESPACE_RE = re.compile(r"\s+")


def extract_text(html: str, max_chars: int = 3000) -> str:
    """Reduce an HTML document to its main text.

    Args:
        html: Raw HTML
        max_chars: Content budget. Longer text is cut and ends with "..."

    Returns:
        Whitespace-collapsed text, possibly empty
    """
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(NOISE_TAGS):
        tag.decompose()

    container = None
    for selector in CONTENT_SELECTORS:
        container = soup.select_one(selector)
        if container is not None:
            break
    if container is None:
        container = soup.body or soup

    text = _WHITESPACE_RE.sub(" ", container.get_text(" ")).strip()
    if len(text) > max_chars:
        text = text[:max_chars].rstrip() + "..."
    return text


class WebFetchSanitizer:
    """Fetches pages for the web search tool.

    `fetch()` never raises. Timeouts, non-200 responses, non-HTML bodies
    and parse failures all return None so one bad page cannot abort a
    multi-result search.

    Args:
        client: Shared HTTP client (follows redirects)
        timeout_seconds: Per-fetch timeout, independent of other fetches
        max_chars: Content budget per page
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout_seconds: float = 5.0,
        max_chars: int = 3000,
    ):
        self._client = client
        self.timeout_seconds = timeout_seconds
        self.max_chars = max_chars

    async def fetch(self, url: str) -> str | None:
        """Fetch one page and return its sanitized text, or None."""
        try:
            response = await self._client.get(
                url,
                headers={
                    "User-Agent": BROWSER_USER_AGENT,
                    "Accept": "text/html,application/xhtml+xml",
                },
                timeout=self.timeout_seconds,
                follow_redirects=True,
            )
        except httpx.HTTPError as e:
            logger.debug(f"Page fetch failed for {url}: {type(e).__name__}")
            return None

        if response.status_code != 200:
            logger.debug(f"Page fetch for {url} returned HTTP {response.status_code}")
            return None
        content_type = response.headers.get("content-type", "")
        if content_type and "html" not in content_type.lower():
            logger.debug(f"Skipping non-HTML page {url} ({content_type})")
            return None

        try:
            text = extract_text(response.text, self.max_chars)
        except Exception as e:
            logger.debug(f"Could not parse {url}: {type(e).__name__}")
            return None
        return text or None
