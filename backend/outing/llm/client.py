"""Narrative reasoner client with OpenAI integration.

Security: Reads API key from settings (environment) only, never hardcoded.
Every call site has a deterministic default, so the reasoner is optional:
get_reasoner() returns None when no key is configured.
"""

import json
import logging
import re
from typing import Any, Protocol

from openai import AsyncOpenAI

from backend.outing.config import Settings, get_settings

logger = logging.getLogger(__name__)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")

MAX_RESPONSE_CHARS = 20000


class NarrativeReasoner(Protocol):
    """Protocol for text-generation capabilities."""

    async def generate(self, prompt: str, *, system: str | None = None) -> str:
        """Generate text for a prompt.

        Args:
            prompt: User prompt
            system: Optional system instructions

        Returns:
            Generated text (may be unparsable; callers validate)
        """
        ...


class OpenAIReasoner:
    """OpenAI-backed narrative reasoner."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", client: AsyncOpenAI | None = None):
        """Initialize OpenAI reasoner.

        Args:
            api_key: OpenAI API key (read from environment)
            model: Model name to use (default: gpt-4o-mini for cost efficiency)
            client: Optional preconfigured client (for testing)
        """
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = model

    async def generate(self, prompt: str, *, system: str | None = None) -> str:
        """Generate text using the chat completions API."""
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=messages,  # type: ignore[arg-type]
            temperature=0.4,
            max_tokens=2000,
        )
        text = response.choices[0].message.content or ""

        if len(text) > MAX_RESPONSE_CHARS:
            logger.warning(
                f"OpenAI response unexpectedly large ({len(text)} chars), "
                f"truncating to {MAX_RESPONSE_CHARS}"
            )
            text = text[:MAX_RESPONSE_CHARS]
        return text


def get_reasoner(settings: Settings | None = None) -> NarrativeReasoner | None:
    """Factory for the configured reasoner.

    Returns:
        OpenAIReasoner if an API key is configured, None otherwise
    """
    settings = settings or get_settings()
    api_key = settings.openai_api_key

    if api_key and api_key.get_secret_value():
        logger.info("Using OpenAI reasoner for narrative enrichment")
        return OpenAIReasoner(api_key=api_key.get_secret_value(), model=settings.openai_model)

    logger.warning("No OpenAI API key configured, using deterministic defaults")
    return None


def parse_json_object(text: str) -> dict[str, Any] | None:
    """Parse a JSON object from generated text.

    Tries the whole text (code fences stripped), then the first {...} span.

    Returns:
        Parsed dict, or None when nothing parses to an object
    """
    cleaned = _CODE_FENCE.sub("", text.strip())
    candidates = [cleaned]
    match = _JSON_OBJECT.search(cleaned)
    if match and match.group(0) != cleaned:
        candidates.append(match.group(0))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None
