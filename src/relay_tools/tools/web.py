"""Web search and URL fetch tools."""

from __future__ import annotations

from typing import Any
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from ..adapters import AdapterError
from ..adapters.duckduckgo import instant_answer, parse_results
from ..schemas import FetchUrlInput, SearchHit, ToolContext, WebSearchInput, WebSearchOutput
from ..settings import ToolSettings

_NOISE_SELECTORS = "script, style, nav, header, footer, aside, .ad, .advertisement"
MAX_LINKS = 50


async def web_search(payload: WebSearchInput, context: ToolContext, *, settings: ToolSettings) -> WebSearchOutput:
    data = await instant_answer(
        base_url=settings.search_base_url,
        query=payload.query,
        timeout_s=settings.request_timeout_s,
        user_agent=settings.user_agent,
    )
    hits = [SearchHit(**item) for item in parse_results(data, payload.query, payload.num_results)]
    return WebSearchOutput(query=payload.query, count=len(hits), results=hits)


async def fetch_url(payload: FetchUrlInput, context: ToolContext, *, settings: ToolSettings) -> dict[str, Any]:
    if urlparse(payload.url).scheme not in {"http", "https"}:
        raise ValueError("Only http/https URLs are supported")

    try:
        async with httpx.AsyncClient(
            timeout=settings.request_timeout_s,
            follow_redirects=True,
            headers={"User-Agent": settings.user_agent},
        ) as client:
            resp = await client.get(payload.url)
    except httpx.RequestError as exc:
        raise AdapterError("UPSTREAM_UNAVAILABLE", f"Failed to fetch URL: {exc}") from exc
    if resp.status_code >= 400:
        raise AdapterError("UPSTREAM_ERROR", f"Failed to fetch URL: {resp.status_code} {resp.reason_phrase}")

    content_type = resp.headers.get("content-type", "")
    if "application/json" in content_type or payload.extract == "json":
        return {"url": payload.url, "type": "json", "data": resp.json()}
    return extract_page(resp.text, payload.url, payload.extract, settings.max_page_chars)


def extract_page(html: str, url: str, extract: str, max_chars: int) -> dict[str, Any]:
    soup = BeautifulSoup(html, "html.parser")
    for node in soup.select(_NOISE_SELECTORS):
        node.decompose()
    title = soup.title.get_text(strip=True) if soup.title else ""
    body = soup.body or soup

    if extract == "html":
        return {"url": url, "type": "html", "title": title, "html": str(body)[: max_chars * 2]}

    if extract == "links":
        links: list[dict[str, str]] = []
        for anchor in body.find_all("a", href=True):
            href = anchor["href"].strip()
            text = anchor.get_text(strip=True)
            if not href or not text or href.startswith("#"):
                continue
            links.append({"text": text, "href": urljoin(url, href)})
        return {"url": url, "type": "links", "count": len(links), "links": links[:MAX_LINKS]}

    text = " ".join(body.get_text(" ").split())
    return {"url": url, "type": "text", "title": title, "content": text[:max_chars], "length": len(text)}
