"""
Web search and fetch tools.

Search always goes through the configured search service. Fetch prefers
the configured fetch service and falls back to a direct GET that looks
like a desktop browser; HTML pages are converted to markdown.
"""

from __future__ import annotations

import contextlib
import logging
from pathlib import Path
from typing import AsyncIterator

import httpx
from bs4 import BeautifulSoup
from markdownify import markdownify as md
from pydantic import BaseModel, Field

from relayagent.core.services import (
    FETCH_SERVICE,
    SEARCH_SERVICE,
    ServiceConfig,
    ServiceConfigError,
    load_agent_config,
    make_client,
    parse_service_config,
)
from relayagent.core.truncation import append_truncation, truncate_output
from relayagent.models.tool_output import ToolOutput

logger = logging.getLogger(__name__)

SEARCH_TIMEOUT_SECONDS = 30
RESULT_SEPARATOR = "---\n\n"

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)

# Tags to remove from HTML before converting to markdown
_REMOVE_TAGS = ["script", "style", "nav", "footer", "header", "aside", "noscript", "iframe", "svg"]


@contextlib.asynccontextmanager
async def _client_scope(client: httpx.AsyncClient | None) -> AsyncIterator[httpx.AsyncClient]:
    """Use the caller's client as-is, or open (and close) a private one."""
    if client is not None:
        yield client
        return
    async with make_client() as owned:
        yield owned


def _html_to_markdown(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in _REMOVE_TAGS:
        for el in soup.find_all(tag):
            el.decompose()
    text = md(str(soup))

    # Collapse runs of blank lines
    cleaned: list[str] = []
    prev_blank = False
    for line in text.splitlines():
        stripped = line.rstrip()
        if not stripped:
            if not prev_blank:
                cleaned.append("")
            prev_blank = True
        else:
            cleaned.append(stripped)
            prev_blank = False
    return "\n".join(cleaned).strip()


# =============================================================================
# Search
# =============================================================================


class SearchWebInput(BaseModel):
    """Input for search_web."""

    query: str = Field(description="Search query")
    limit: int = Field(default=5, ge=1, description="Number of results")
    include_content: bool = Field(default=False, description="Include page content in results")


class SearchResult(BaseModel):
    title: str = ""
    url: str = ""
    snippet: str = ""
    content: str = ""
    date: str = ""


class SearchResponse(BaseModel):
    search_results: list[SearchResult] = Field(default_factory=list)


def format_results(results: list[SearchResult]) -> str:
    blocks = []
    for result in results:
        block = (
            f"Title: {result.title}\nDate: {result.date}\n"
            f"URL: {result.url}\nSummary: {result.snippet}\n\n"
        )
        if result.content:
            block += result.content + "\n\n"
        blocks.append(block)
    return RESULT_SEPARATOR.join(blocks)


async def search_web(
    input: SearchWebInput,
    config_path: Path | None = None,
    tool_call_id: str = "",
    auth_headers: dict[str, str] | None = None,
    client: httpx.AsyncClient | None = None,
) -> ToolOutput:
    """
    Query the configured search service.

    Examples:
        >>> await search_web(SearchWebInput(query="python asyncio queue"))
        >>> await search_web(SearchWebInput(query="httpx mock", limit=3, include_content=True))
    """
    try:
        service = parse_service_config(load_agent_config(config_path), SEARCH_SERVICE)
    except ServiceConfigError as e:
        return ToolOutput.fail(str(e))
    if service is None:
        return ToolOutput.fail("Search service is not configured.")

    body = {
        "text_query": input.query,
        "limit": input.limit,
        "enable_page_crawling": input.include_content,
        "timeout_seconds": SEARCH_TIMEOUT_SECONDS,
    }
    try:
        async with _client_scope(client) as http:
            response = await http.post(
                service.base_url, json=body, headers=service.headers(tool_call_id, auth_headers)
            )
    except httpx.HTTPError as e:
        return ToolOutput.fail(f"Failed to search: {e}")

    if not response.is_success:
        return ToolOutput.fail(f"Search request failed with status {response.status_code}")

    try:
        data = SearchResponse.model_validate(response.json())
    except ValueError as e:
        return ToolOutput.fail(f"Failed to parse search response: {e}")

    output, truncated = truncate_output(format_results(data.search_results))
    return ToolOutput.success(append_truncation("Search completed.", truncated), output)


# =============================================================================
# Fetch
# =============================================================================


class FetchURLInput(BaseModel):
    """Input for fetch_url."""

    url: str = Field(description="URL to fetch")


async def _fetch_via_service(
    http: httpx.AsyncClient,
    service: ServiceConfig,
    url: str,
    tool_call_id: str,
    auth_headers: dict[str, str] | None,
) -> str | None:
    headers = service.headers(tool_call_id, auth_headers)
    headers["Accept"] = "text/markdown"
    try:
        response = await http.post(service.base_url, json={"url": url}, headers=headers)
    except httpx.HTTPError as e:
        logger.warning("Fetch service failed, falling back to direct GET: %s", e)
        return None
    if not response.is_success:
        logger.warning("Fetch service returned %s, falling back to direct GET", response.status_code)
        return None
    return response.text


async def fetch_url(
    input: FetchURLInput,
    config_path: Path | None = None,
    tool_call_id: str = "",
    auth_headers: dict[str, str] | None = None,
    client: httpx.AsyncClient | None = None,
) -> ToolOutput:
    """
    Fetch a URL's content.

    Examples:
        >>> await fetch_url(FetchURLInput(url="https://docs.python.org/3/library/asyncio.html"))
    """
    service: ServiceConfig | None = None
    try:
        service = parse_service_config(load_agent_config(config_path), FETCH_SERVICE)
    except ServiceConfigError as e:
        logger.debug("No usable agent config for fetch service: %s", e)

    async with _client_scope(client) as http:
        if service is not None:
            text = await _fetch_via_service(http, service, input.url, tool_call_id, auth_headers)
            if text is not None:
                output, truncated = truncate_output(text)
                return ToolOutput.success(
                    append_truncation("Fetched content via service.", truncated), output
                )

        try:
            response = await http.get(input.url, headers={"User-Agent": BROWSER_USER_AGENT})
        except httpx.HTTPError as e:
            return ToolOutput.fail(f"Failed to fetch URL: {e}")

    if not response.is_success:
        return ToolOutput.fail(f"Fetch failed with status {response.status_code}")

    content_type = response.headers.get("content-type", "").lower()
    body = response.text
    if content_type.startswith(("text/plain", "text/markdown")):
        summary = "Fetched plain text content."
    elif content_type.startswith("text/html"):
        body = _html_to_markdown(body)
        summary = "Fetched HTML content as markdown."
    else:
        summary = "Fetched response body."

    output, truncated = truncate_output(body)
    return ToolOutput.success(append_truncation(summary, truncated), output)
