"""DuckDuckGo Instant Answer adapter.

Encapsulates upstream API details and error normalization.
"""

from __future__ import annotations

from typing import Any, Iterator

import httpx

from . import AdapterError


async def instant_answer(*, base_url: str, query: str, timeout_s: float, user_agent: str) -> dict[str, Any]:
    params = {"q": query, "format": "json", "no_html": 1, "skip_disambig": 1}
    try:
        async with httpx.AsyncClient(timeout=timeout_s, headers={"User-Agent": user_agent}) as client:
            resp = await client.get(base_url, params=params)
    except httpx.RequestError as exc:
        raise AdapterError("UPSTREAM_UNAVAILABLE", f"Search failed: {exc}") from exc
    if resp.status_code >= 400:
        raise AdapterError("UPSTREAM_ERROR", f"Search failed: HTTP {resp.status_code}")
    try:
        return resp.json()
    except ValueError as exc:
        raise AdapterError("UPSTREAM_BAD_RESPONSE", "Search returned a non-JSON body") from exc


def _iter_topics(topics: list[dict[str, Any]]) -> Iterator[dict[str, Any]]:
    for topic in topics:
        # Grouped topics nest their entries under "Topics".
        if "Topics" in topic:
            yield from _iter_topics(topic.get("Topics") or [])
        else:
            yield topic


def parse_results(data: dict[str, Any], query: str, limit: int) -> list[dict[str, Any]]:
    """Flatten abstract + related topics into search hits."""
    results: list[dict[str, Any]] = []
    if data.get("Abstract"):
        results.append(
            {
                "title": data.get("Heading") or query,
                "snippet": data["Abstract"],
                "url": data.get("AbstractURL"),
                "source": data.get("AbstractSource"),
            }
        )
    for topic in _iter_topics(data.get("RelatedTopics", [])):
        if len(results) >= limit:
            break
        text = topic.get("Text")
        if not text:
            continue
        results.append(
            {
                "title": text.split(" - ")[0],
                "snippet": text,
                "url": topic.get("FirstURL"),
            }
        )
    return results[:limit]
