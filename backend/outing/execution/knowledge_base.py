"""Action-manual knowledge base client.

Lookups are best-effort and text-only: any failure is returned as an
explanatory string so the engine can carry on without a manual.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Protocol
from urllib.parse import urlparse

import httpx

from backend.outing.adapters.http import HTTPAttemptLogger, fetch_with_retry
from backend.outing.config import Settings, get_settings
from backend.outing.utils.metrics import PipelineMetrics

logger = logging.getLogger(__name__)

SOURCE_NAME = "knowledge_base"

SEARCH_QUERIES: dict[str, dict[str, str]] = {
    "eventbrite": {
        "book": "eventbrite book ticket register",
        "register": "eventbrite register event",
        "reserve": "eventbrite reserve ticket",
    },
    "eventfinda": {
        "book": "book event ticket",
        "register": "register event",
        "reserve": "reserve event",
    },
    "chope": {
        "book": "chope book restaurant reservation",
        "register": "chope reserve table",
        "reserve": "chope restaurant reservation",
    },
    "opentable": {
        "book": "opentable book restaurant",
        "register": "opentable reserve table",
        "reserve": "opentable reservation",
    },
}


def extract_domain(url: str) -> str | None:
    """Host of a URL without a leading www., or None if unparseable."""
    host = urlparse(url).hostname
    if not host:
        return None
    return host[4:] if host.startswith("www.") else host


def build_search_query(source: str, action: str = "book") -> str:
    """Search query for a source and booking action."""
    queries = SEARCH_QUERIES.get(source.lower())
    if queries and action in queries:
        return queries[action]
    return f"{source} {action} event"


def area_id_for(domain: str) -> str:
    """Default action area for a site."""
    return f"{domain}:/:default"


def no_manual_text(query: str, error: str) -> str:
    return f'No action manuals found for "{query}". Error: {error}'


def is_missing_manual(text: str) -> bool:
    """True when the text is a failure message rather than a manual."""
    return text.startswith("No action manuals found") or text.startswith("Failed to get action manual")


class KnowledgeBase(Protocol):
    """Source of site-specific booking instructions."""

    async def search_actions(
        self, query: str, domain: str | None = None, background: str | None = None
    ) -> str: ...

    async def get_details(self, area_id: str) -> str: ...


class HttpKnowledgeBase:
    """Knowledge base served over HTTP."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
        metrics: PipelineMetrics | None = None,
        step_logger: HTTPAttemptLogger | None = None,
    ):
        self._settings = settings or get_settings()
        self.base_url = (base_url or self._settings.knowledge_base_base_url or "").rstrip("/")
        if api_key is None and self._settings.knowledge_base_api_key is not None:
            api_key = self._settings.knowledge_base_api_key.get_secret_value()
        self._api_key = api_key
        self._client = client
        self._sleep = sleep_fn
        self._metrics = metrics
        self._step_logger = step_logger

    async def _get_text(self, path: str, params: dict[str, str] | None = None) -> str:
        headers = {"Accept": "text/plain"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        close_client = False
        client = self._client
        if client is None:
            client = httpx.AsyncClient(timeout=self._settings.discovery_timeout_s)
            close_client = True

        try:
            response = await fetch_with_retry(
                client,
                "GET",
                f"{self.base_url}{path}",
                source=SOURCE_NAME,
                retries=self._settings.http_max_retries,
                base_delay_ms=self._settings.http_base_delay_ms,
                sleep_fn=self._sleep,
                metrics=self._metrics,
                step_logger=self._step_logger,
                params=params,
                headers=headers,
            )
            return response.text
        finally:
            if close_client:
                await client.aclose()

    async def search_actions(
        self, query: str, domain: str | None = None, background: str | None = None
    ) -> str:
        """Search action manuals; failures come back as text."""
        if not self.base_url:
            return no_manual_text(query, "knowledge base not configured")

        params = {"query": query}
        if domain:
            params["domain"] = domain
        if background:
            params["background"] = background
        try:
            return await self._get_text("/search_actions", params)
        except Exception as e:
            logger.warning(f'Knowledge base search failed for "{query}": {e}')
            return no_manual_text(query, str(e))

    async def get_details(self, area_id: str) -> str:
        """Full manual for an action area; failures come back as text."""
        if not self.base_url:
            return f'Failed to get action manual for "{area_id}". Error: knowledge base not configured'
        try:
            return await self._get_text(f"/actions/{area_id}")
        except Exception as e:
            logger.warning(f'Knowledge base lookup failed for "{area_id}": {e}')
            return f'Failed to get action manual for "{area_id}". Error: {e}'
