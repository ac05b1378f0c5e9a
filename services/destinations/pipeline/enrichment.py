"""
LLM enrichment for destinations: description, vibe tags, search keywords.

One Messages API call per city. The model is asked for strict JSON; the
response is parsed by taking the first balanced JSON object in the text
(models occasionally wrap JSON in prose) and checking it has a non-empty
``description`` and a non-empty string list ``vibe_tags``. ``keywords`` is
optional.

Retry policy (per city):
  - Rate-limit errors (429 / "rate_limit"): exponential backoff,
    ``retry_delay_s * 2**attempt``, until ``max_retries`` attempts are used.
  - Any other error: retried immediately while attempts remain.
  - On the last attempt the error propagates; the assembler decides what
    to do with it (it substitutes fallback content).

Two interchangeable implementations share ``BaseEnrichmentService``:
  - LLMEnrichmentService   -- anthropic.AsyncAnthropic, network-backed
  - StaticEnrichmentService -- canned, deterministic, no network
"""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Sequence

import anthropic

from services.destinations.pipeline.base_cities import BaseCity

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_MODEL = "claude-haiku-4-5-20251001"
PROMPT_VERSION = "destination-enrich-v1"
DEFAULT_MAX_TOKENS = 800
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_S = 1.0
DEFAULT_CONCURRENCY = 5

ProgressCallback = Callable[[int, int], None]
SleepFn = Callable[[float], Awaitable[None]]


class EnrichmentError(Exception):
    """The model answered, but not with a usable enrichment object."""


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass
class EnrichmentResult:
    description: str
    vibe_tags: list[str]
    keywords: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Prompt construction
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = """You are a travel content writer specializing in vivid, atmospheric descriptions of cities and destinations.
For each city you receive, produce:

1. A description (150-250 words) capturing the city's atmosphere, culture and appeal to travelers.
   Focus on sensory details, mood, landmarks, local experiences, and what makes the city special
   for different kinds of travelers (couples, families, solo travelers, adventurers).

2. 8-12 vibe tags: single words or short phrases capturing the essence of the city. Draw from:
   - Mood/Atmosphere: romantic, relaxing, adventurous, vibrant, peaceful, energetic, mystical, bohemian
   - Activities: beach, hiking, temples, museums, nightlife, shopping, food, wine, surfing, diving, safari
   - Traveler Type: honeymoon, family-friendly, solo-travel, couples, backpacker, luxury
   - Character: historic, modern, ancient, spiritual, artistic, cultural, cosmopolitan, charming
   - Sensory: scenic, picturesque, colorful, tropical, coastal, mountainous

3. 5-8 searchable keywords people might type when looking for this kind of destination
   (e.g. "wedding destination", "island getaway", "UNESCO sites", "street food").

Respond ONLY with a single JSON object, no prose, no markdown:
{"description": "...", "vibe_tags": ["tag1", "tag2"], "keywords": ["keyword1", "keyword2"]}"""


def build_user_prompt(city: BaseCity) -> str:
    """Per-city user message."""
    return "\n".join([
        "Generate a travel description and vibe tags for:",
        "",
        f"City: {city.city}",
        f"Country: {city.country}",
        f"Continent: {city.continent}",
        f"Climate: {city.climate_type}",
        f"Best time to visit: {city.best_time_to_visit}",
        "",
        "Remember to respond with valid JSON only.",
    ])


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def extract_json_object(text: str) -> Optional[dict[str, Any]]:
    """Return the first balanced JSON object embedded in ``text``, if any."""
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(obj, dict):
            return obj
        start = text.find("{", start + 1)
    return None


def validate_enrichment_output(output: Any) -> bool:
    """Non-empty string description and non-empty list of string vibe_tags."""
    if not isinstance(output, dict):
        return False
    description = output.get("description")
    if not isinstance(description, str) or not description.strip():
        return False
    tags = output.get("vibe_tags")
    if not isinstance(tags, list) or not tags:
        return False
    return all(isinstance(t, str) for t in tags)


def parse_enrichment_response(text: str) -> EnrichmentResult:
    """Parse model text into an EnrichmentResult or raise EnrichmentError."""
    data = extract_json_object(text or "")
    if data is None:
        raise EnrichmentError("Failed to parse LLM response: no JSON object found")
    if not validate_enrichment_output(data):
        raise EnrichmentError("Failed to parse LLM response: invalid enrichment structure")

    raw_keywords = data.get("keywords") or []
    if not isinstance(raw_keywords, list):
        raw_keywords = []

    tags = [t.strip().lower() for t in data["vibe_tags"] if t.strip()]
    if not tags:
        raise EnrichmentError("Failed to parse LLM response: all vibe_tags blank")

    return EnrichmentResult(
        description=data["description"].strip(),
        vibe_tags=tags,
        keywords=[
            k.strip().lower()
            for k in raw_keywords
            if isinstance(k, str) and k.strip()
        ],
    )


def is_rate_limit_error(exc: BaseException) -> bool:
    """429s, by type, status code or message."""
    if isinstance(exc, anthropic.RateLimitError):
        return True
    if getattr(exc, "status_code", None) == 429:
        return True
    message = str(exc)
    return "rate_limit" in message or "429" in message


# ---------------------------------------------------------------------------
# Service interface
# ---------------------------------------------------------------------------

class BaseEnrichmentService(ABC):
    """Capability interface: enrich one city, or many with bounded concurrency."""

    @abstractmethod
    async def enrich_one(self, city: BaseCity) -> EnrichmentResult:
        ...

    async def enrich_many(
        self,
        cities: Sequence[BaseCity],
        concurrency: int = DEFAULT_CONCURRENCY,
        on_progress: Optional[ProgressCallback] = None,
    ) -> list[EnrichmentResult]:
        """
        Enrich ``cities`` with at most ``concurrency`` calls in flight.

        ``on_progress(completed, total)`` fires after each completion, in
        completion order. Results come back in input order. The first
        failing city propagates; calls still running or queued are
        cancelled before it does.
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")

        semaphore = asyncio.Semaphore(concurrency)
        total = len(cities)
        completed = 0

        async def _run(city: BaseCity) -> EnrichmentResult:
            nonlocal completed
            async with semaphore:
                result = await self.enrich_one(city)
            completed += 1
            if on_progress is not None:
                on_progress(completed, total)
            return result

        tasks = [asyncio.ensure_future(_run(c)) for c in cities]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return list(results)

    async def aclose(self) -> None:
        """Release network resources, if any."""


# ---------------------------------------------------------------------------
# Live implementation
# ---------------------------------------------------------------------------

class LLMEnrichmentService(BaseEnrichmentService):
    """Anthropic-backed enrichment with rate-limit aware retries."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        client: Optional[anthropic.AsyncAnthropic] = None,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_s: float = DEFAULT_RETRY_DELAY_S,
        sleep: SleepFn = asyncio.sleep,
    ):
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")

        self._owns_client = client is None
        # SDK retries off: the retry policy below is the only one
        self.client = client or anthropic.AsyncAnthropic(api_key=api_key, max_retries=0)
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.max_retries = max_retries
        self.retry_delay_s = retry_delay_s
        self._sleep = sleep

    async def _request(self, city: BaseCity) -> EnrichmentResult:
        t0 = time.monotonic()
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": build_user_prompt(city)}],
        )
        latency = time.monotonic() - t0

        usage = getattr(response, "usage", None)
        logger.info(
            "llm_call model=%s prompt_version=%s latency_s=%.3f "
            "input_tokens=%s output_tokens=%s city=%s",
            self.model,
            PROMPT_VERSION,
            latency,
            getattr(usage, "input_tokens", "?"),
            getattr(usage, "output_tokens", "?"),
            city.city,
        )

        text = "".join(
            block.text
            for block in response.content
            if getattr(block, "type", None) == "text"
        )
        if not text.strip():
            raise EnrichmentError("Empty response from LLM")

        return parse_enrichment_response(text)

    async def enrich_one(self, city: BaseCity) -> EnrichmentResult:
        last_exc: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                return await self._request(city)
            except Exception as exc:
                last_exc = exc
                if attempt == self.max_retries - 1:
                    break

                if is_rate_limit_error(exc):
                    wait = self.retry_delay_s * (2 ** attempt)
                    logger.warning(
                        "Rate limited enriching %s, retry %d/%d in %.1fs",
                        city.city, attempt + 1, self.max_retries, wait,
                    )
                    await self._sleep(wait)
                else:
                    logger.warning(
                        "Error enriching %s, retry %d/%d: %s",
                        city.city, attempt + 1, self.max_retries, exc,
                    )

        logger.error(
            "Enrichment failed after %d attempts for %s: %s",
            self.max_retries, city.city, last_exc,
        )
        raise last_exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.close()


# ---------------------------------------------------------------------------
# No-network implementation
# ---------------------------------------------------------------------------

STATIC_VIBE_TAGS = ["vibrant", "cultural", "historic", "welcoming", "scenic"]
STATIC_KEYWORDS = ["travel", "vacation", "tourism", "holiday"]


class StaticEnrichmentService(BaseEnrichmentService):
    """Deterministic canned enrichment for offline runs and tests."""

    def __init__(self):
        self.calls = 0

    async def enrich_one(self, city: BaseCity) -> EnrichmentResult:
        self.calls += 1
        return EnrichmentResult(
            description=(
                f"{city.city} is a captivating destination in {city.country}, "
                "known for its unique blend of culture and atmosphere. The city "
                "offers visitors an unforgettable experience with its distinctive "
                "character and charm."
            ),
            vibe_tags=list(STATIC_VIBE_TAGS),
            keywords=list(STATIC_KEYWORDS),
        )
