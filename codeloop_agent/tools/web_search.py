"""
WebSearch Tool — DuckDuckGo search through its HTML endpoint.
"""

from __future__ import annotations
import logging
from urllib.parse import parse_qs, urlparse

import httpx

from .base import BaseTool
from .web_fetch import FETCH_RETRY_POLICY, USER_AGENT
from ..core.models import ToolInvocation, ToolKind, ToolResult
from ..core.retry import retry_async

logger = logging.getLogger(__name__)

SEARCH_URL = "https://html.duckduckgo.com/html/"
DEFAULT_MAX_RESULTS = 10
MAX_RESULTS = 20


def unwrap_result_url(href: str) -> str:
    """DuckDuckGo wraps result links as ``//duckduckgo.com/l/?uddg=<url>``."""
    parsed = urlparse(href if "://" in href else f"https:{href}")
    target = parse_qs(parsed.query).get("uddg")
    return target[0] if target else href


def parse_results(html: str, limit: int) -> list[dict]:
    from bs4 import BeautifulSoup

    soup = BeautifulSoup(html, "html.parser")
    results = []
    for item in soup.select("div.result"):
        link = item.select_one("a.result__a")
        if link is None or not link.get("href"):
            continue
        snippet = item.select_one(".result__snippet")
        results.append({
            "title": link.get_text(strip=True),
            "url": unwrap_result_url(link["href"]),
            "snippet": snippet.get_text(" ", strip=True) if snippet else "",
        })
        if len(results) >= limit:
            break
    return results


class WebSearchTool(BaseTool):
    name = "web_search"
    description = "Search the web for information. Returns results with titles, URLs and snippets."
    kind = ToolKind.NETWORK
    input_schema = {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "Search query",
            },
            "max_results": {
                "type": "integer",
                "description": f"Maximum results to return (default {DEFAULT_MAX_RESULTS}, max {MAX_RESULTS})",
            },
        },
        "required": ["query"],
    }

    async def _post(self, query: str) -> httpx.Response:
        async with httpx.AsyncClient(timeout=30, headers={"User-Agent": USER_AGENT}) as client:
            response = await client.post(SEARCH_URL, data={"q": query})
            response.raise_for_status()
            return response

    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        query = str(invocation.params["query"])
        limit = min(max(int(invocation.params.get("max_results") or DEFAULT_MAX_RESULTS), 1), MAX_RESULTS)

        try:
            response = await retry_async(self._post, query, policy=FETCH_RETRY_POLICY)
            results = parse_results(response.text, limit)
        except httpx.HTTPError as e:
            logger.info(f"web_search failed for {query!r}: {e}")
            return self._error(f"Search failed: {e}")
        except ImportError:
            return self._error("Search result parsing needs the 'web' extra: pip install codeloop-agent[web]")

        if not results:
            return self._success(f"No results found for: {query}", metadata={"results": 0})

        lines = [f"Search results for: {query}"]
        for i, result in enumerate(results, start=1):
            lines.append(f"{i}. Title: {result['title']}")
            lines.append(f"   URL: {result['url']}")
            if result["snippet"]:
                lines.append(f"   Snippet: {result['snippet']}")
            lines.append("")
        return self._success("\n".join(lines), metadata={"results": len(results)})
