"""
WebFetch Tool — Fetch a URL with httpx and return its content as Markdown.

HTML pages are cleaned with BeautifulSoup and converted with markdownify;
other text responses are returned as-is.  Transient transport errors are
retried with exponential backoff.
"""

from __future__ import annotations
import logging
from urllib.parse import urlparse

import httpx

from .base import BaseTool, truncate_text
from ..core.models import ToolInvocation, ToolKind, ToolResult
from ..core.retry import RetryPolicy, retry_async

logger = logging.getLogger(__name__)

MAX_CONTENT_CHARS = 100 * 1024
DEFAULT_TIMEOUT = 120
USER_AGENT = "Mozilla/5.0 (compatible; codeloop-agent/0.1)"

FETCH_RETRY_POLICY = RetryPolicy(
    max_retries=3,
    backoff_base=1.0,
    retryable_exceptions=(httpx.TransportError,),
)

BLOCKED_HOSTS = {
    "localhost", "127.0.0.1", "0.0.0.0", "::1",
    "metadata.google.internal",
    "169.254.169.254",
}
BLOCKED_IP_PREFIXES = (
    "10.", "192.168.", "169.254.",
    *(f"172.{n}." for n in range(16, 32)),
    "fc00:", "fd00:", "fe80:",
)

STRIP_TAGS = ["script", "style", "nav", "footer", "header", "aside", "noscript"]


def is_private_target(url: str) -> bool:
    """True for loopback, link-local, RFC1918 and cloud metadata hosts."""
    host = (urlparse(url).hostname or "").lower()
    if not host:
        return True
    return host in BLOCKED_HOSTS or host.startswith(BLOCKED_IP_PREFIXES)


def html_to_markdown(html: str) -> str:
    from bs4 import BeautifulSoup
    from markdownify import markdownify

    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(STRIP_TAGS):
        tag.decompose()
    markdown = markdownify(str(soup), heading_style="ATX", strip=["img"])
    if markdown.strip():
        return markdown.strip()
    return soup.get_text(separator="\n", strip=True)


class WebFetchTool(BaseTool):
    name = "web_fetch"
    description = (
        "Fetch a URL and return its content. HTML pages are converted to Markdown. "
        "Only public http:// and https:// URLs are allowed."
    )
    kind = ToolKind.NETWORK
    input_schema = {
        "type": "object",
        "properties": {
            "url": {
                "type": "string",
                "description": "The URL to fetch",
            },
            "timeout": {
                "type": "integer",
                "description": f"Request timeout in seconds (default {DEFAULT_TIMEOUT})",
            },
        },
        "required": ["url"],
    }

    async def _get(self, url: str, timeout: float) -> httpx.Response:
        async with httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        ) as client:
            return await client.get(url)

    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        url = str(invocation.params["url"]).strip()
        if not url.lower().startswith(("http://", "https://")):
            return self._error("Url must be http:// or https://")
        if is_private_target(url):
            return self._error(f"Refusing to fetch private or internal address: {url}")

        timeout = float(invocation.params.get("timeout") or DEFAULT_TIMEOUT)
        try:
            response = await retry_async(self._get, url, timeout, policy=FETCH_RETRY_POLICY)
        except httpx.HTTPError as e:
            logger.info(f"web_fetch failed for {url}: {e}")
            return self._error(f"Request failed: {e}")

        if response.status_code >= 400:
            return self._error(f"HTTP {response.status_code}: {response.reason_phrase}")

        text = response.text
        content_type = response.headers.get("content-type", "")
        if "html" in content_type:
            try:
                text = html_to_markdown(text)
            except ImportError:
                return self._error("HTML conversion needs the 'web' extra: pip install codeloop-agent[web]")

        content, truncated = truncate_text(text, MAX_CONTENT_CHARS, "\n... [content truncated]")
        return self._success(
            content,
            truncated=truncated,
            metadata={
                "url": str(response.url),
                "status_code": response.status_code,
                "content_type": content_type,
                "content_length": len(response.text),
            },
        )
