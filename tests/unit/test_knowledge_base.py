"""Tests for the action-manual knowledge base client."""

import httpx
import pytest

from backend.outing.execution.knowledge_base import (
    HttpKnowledgeBase,
    area_id_for,
    build_search_query,
    extract_domain,
    is_missing_manual,
)


class TestHelpers:
    """Test query and domain helpers."""

    def test_extract_domain(self) -> None:
        assert extract_domain("https://www.eventbrite.sg/e/jazz-night-1") == "eventbrite.sg"
        assert extract_domain("https://chope.co/singapore") == "chope.co"
        assert extract_domain("not a url") is None

    def test_build_search_query(self) -> None:
        assert build_search_query("Eventbrite") == "eventbrite book ticket register"
        assert build_search_query("chope", "reserve") == "chope restaurant reservation"
        assert build_search_query("meetup", "register") == "meetup register event"

    def test_area_id(self) -> None:
        assert area_id_for("eventbrite.sg") == "eventbrite.sg:/:default"


class TestHttpKnowledgeBase:
    """Test HttpKnowledgeBase."""

    @pytest.mark.asyncio
    async def test_unconfigured_returns_message(self, settings) -> None:
        kb = HttpKnowledgeBase(settings=settings)

        text = await kb.search_actions("eventbrite book ticket register")

        assert is_missing_manual(text)
        assert "not configured" in text
        assert is_missing_manual(await kb.get_details("eventbrite.sg:/:default"))

    @pytest.mark.asyncio
    async def test_search_sends_query_and_bearer(self, settings) -> None:
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(200, text="1. Click 'Get tickets'\n2. Fill the form")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        kb = HttpKnowledgeBase(base_url="https://kb.test/", api_key="kb-key", client=client, settings=settings)

        text = await kb.search_actions("eventbrite book ticket register", domain="eventbrite.sg")

        assert text.startswith("1. Click")
        assert not is_missing_manual(text)
        request = captured[0]
        assert request.url.path == "/search_actions"
        assert request.url.params["query"] == "eventbrite book ticket register"
        assert request.url.params["domain"] == "eventbrite.sg"
        assert request.headers["Authorization"] == "Bearer kb-key"

    @pytest.mark.asyncio
    async def test_get_details_path(self, settings) -> None:
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(200, text="manual")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        kb = HttpKnowledgeBase(base_url="https://kb.test", client=client, settings=settings)

        assert await kb.get_details("eventbrite.sg:/:default") == "manual"
        assert captured[0].url.path == "/actions/eventbrite.sg:/:default"
        assert "Authorization" not in captured[0].headers

    @pytest.mark.asyncio
    async def test_failures_become_text(self, settings, sleep_recorder) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, text="not found")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        kb = HttpKnowledgeBase(
            base_url="https://kb.test", client=client, settings=settings, sleep_fn=sleep_recorder
        )

        search_text = await kb.search_actions("chope book restaurant reservation")
        details_text = await kb.get_details("chope.co:/:default")

        assert search_text.startswith('No action manuals found for "chope book restaurant reservation"')
        assert "404" in search_text
        assert details_text.startswith('Failed to get action manual for "chope.co:/:default"')
