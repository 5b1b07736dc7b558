from __future__ import annotations

import json
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field

from agent.core.models import SearchResult
from agent.core.prompt import SEARCH_TOOL_DESCRIPTION
from config.settings import Settings, get_settings


logger = logging.getLogger(__name__)

SEARCH_TOOL_NAME = "searchGoogle"
MAX_RESULTS = 5

NOT_AVAILABLE = "N/A"
NO_RESULTS_NAME = "Brak wyników"
ERROR_NAME = "Błąd"
NO_NAME = "Brak nazwy"
NO_DESCRIPTION = "Brak opisu"
NO_LINK = "Brak linku"
NO_PHONE = "Brak numeru"

PHONE_PATTERN = re.compile(r"\+?\d[\d\s-]{8,14}\d")

SearchFunction = Callable[[str], Awaitable[List[SearchResult]]]


def no_results() -> List[SearchResult]:
    return [SearchResult(name=NO_RESULTS_NAME, contact=NOT_AVAILABLE, link=NOT_AVAILABLE)]


def search_error() -> List[SearchResult]:
    return [SearchResult(name=ERROR_NAME, contact=NOT_AVAILABLE, link=NOT_AVAILABLE)]


def is_sentinel(results: List[SearchResult]) -> bool:
    """True when ``results`` carries no real candidates (empty, no-results or error)."""
    if not results:
        return True
    return len(results) == 1 and results[0].name in {NO_RESULTS_NAME, ERROR_NAME}


def extract_phone(text: str) -> str:
    match = PHONE_PATTERN.search(text or "")
    return match.group(0) if match else NO_PHONE


def _to_results(data: Dict[str, Any]) -> List[SearchResult]:
    items = data.get("items")
    if not items:
        return no_results()

    results = []
    for item in items[:MAX_RESULTS]:
        snippet = item.get("snippet") or NO_DESCRIPTION
        results.append(
            SearchResult(
                name=item.get("title") or NO_NAME,
                contact=extract_phone(snippet),
                link=item.get("link") or NO_LINK,
            )
        )
    return results


async def search_google(
    query: str,
    *,
    settings: Optional[Settings] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> List[SearchResult]:
    """Query Google Custom Search and return up to five results.

    Never raises: transport and parse failures come back as the error
    sentinel, an empty response as the no-results sentinel.
    """
    settings = settings or get_settings()
    params = {
        "q": query,
        "key": settings.google_api_key or "",
        "cx": settings.google_cx or "",
    }

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=settings.search_timeout) as own_client:
                response = await own_client.get(settings.search_api_url, params=params)
        else:
            response = await client.get(settings.search_api_url, params=params)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected search payload type: {type(data).__name__}")
    except (httpx.HTTPError, ValueError) as exc:
        logger.error("Google search failed for query %r: %s", query, exc)
        return search_error()

    results = _to_results(data)
    logger.info("Google search for %r returned %s result(s)", query, len(results))
    return results


def serialize_results(results: List[SearchResult]) -> str:
    return json.dumps(
        [result.model_dump(by_alias=True) for result in results],
        ensure_ascii=False,
    )


def parse_tool_arguments(raw: Optional[str]) -> Dict[str, Any]:
    """Decode the JSON arguments of a tool call; a bare JSON string becomes ``{"query": ...}``."""
    if not raw or not raw.strip():
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Tool arguments are not valid JSON: {exc.msg}") from exc

    if isinstance(decoded, str):
        return {"query": decoded}
    if isinstance(decoded, dict):
        return decoded
    raise ValueError(f"Tool arguments must be an object, got {type(decoded).__name__}")


class SearchGoogleInput(BaseModel):
    query: str = Field(..., description="Search phrase, e.g. 'hydraulik Kraków'")


def build_google_search_tool(search: Optional[SearchFunction] = None) -> StructuredTool:
    search = search or search_google

    async def _search_tool(query: str) -> str:
        results = await search(query)
        return serialize_results(results)

    return StructuredTool.from_function(
        coroutine=_search_tool,
        name=SEARCH_TOOL_NAME,
        description=SEARCH_TOOL_DESCRIPTION,
        args_schema=SearchGoogleInput,
    )
