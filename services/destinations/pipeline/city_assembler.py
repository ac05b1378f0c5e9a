"""
City assembler: base city + scores + image + enrichment -> AssembledCity.

The AssembledCity is the unit of record published to the search index,
keyed by a stable ``objectID`` slug ("paris-france"). Every record is
validated right after construction; a failure there is a programming
defect and raises CityAssemblyError naming the city.

Enrichment failures are NOT fatal: the assembler substitutes fallback
content that names the city and country, so placeholder text is easy to
spot downstream.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Optional, Sequence

from services.destinations.pipeline.base_cities import BaseCity
from services.destinations.pipeline.enrichment import BaseEnrichmentService, EnrichmentResult
from services.destinations.pipeline.image_resolver import ImageResolver
from services.destinations.pipeline.score_generator import (
    SCORE_FIELDS,
    generate_scores,
    is_valid_score,
)

logger = logging.getLogger(__name__)

MessageCallback = Callable[[str], None]


class CityAssemblyError(Exception):
    """An assembled record failed validation."""


# ---------------------------------------------------------------------------
# Record
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AssembledCity:
    objectID: str
    city: str
    country: str
    continent: str
    description: str
    vibe_tags: list[str]
    culture_score: int
    adventure_score: int
    nature_score: int
    beach_score: int
    nightlife_score: int
    climate_type: str
    best_time_to_visit: str
    image_url: str
    keywords: list[str] = field(default_factory=list)

    def to_record(self) -> dict[str, Any]:
        """Plain dict, ready for JSON / index upload."""
        return asdict(self)


_REQUIRED_STRING_FIELDS = (
    "objectID",
    "city",
    "country",
    "continent",
    "description",
    "climate_type",
    "best_time_to_visit",
    "image_url",
)


def validate_assembled_city(record: Any) -> bool:
    """
    Pure, total validity check for an assembled record (dict or AssembledCity).

    Valid iff every required string field is a non-empty string, vibe_tags
    is a non-empty list of strings, and each score is an int in [1, 10].
    """
    if isinstance(record, AssembledCity):
        record = record.to_record()
    if not isinstance(record, dict):
        return False

    for name in _REQUIRED_STRING_FIELDS:
        value = record.get(name)
        if not isinstance(value, str) or not value:
            return False

    tags = record.get("vibe_tags")
    if not isinstance(tags, (list, tuple)) or not tags:
        return False
    if not all(isinstance(t, str) for t in tags):
        return False

    return all(is_valid_score(record.get(name)) for name in SCORE_FIELDS)


# ---------------------------------------------------------------------------
# Fallback content
# ---------------------------------------------------------------------------

DEFAULT_DESCRIPTION = "A vibrant travel destination with unique culture and attractions."
DEFAULT_VIBE_TAGS = ["cultural", "scenic", "welcoming"]
DEFAULT_KEYWORDS = ["travel", "vacation", "tourism"]


def skipped_enrichment(city: BaseCity) -> EnrichmentResult:
    """Content used when enrichment is deliberately skipped."""
    return EnrichmentResult(
        description=f"{city.city}, {city.country} - {DEFAULT_DESCRIPTION}",
        vibe_tags=list(DEFAULT_VIBE_TAGS),
        keywords=list(DEFAULT_KEYWORDS),
    )


def fallback_enrichment(city: BaseCity) -> EnrichmentResult:
    """Content used when the enrichment service failed for this city."""
    return EnrichmentResult(
        description=(
            f"{city.city} is a captivating destination in {city.country}. "
            f"{DEFAULT_DESCRIPTION}"
        ),
        vibe_tags=list(DEFAULT_VIBE_TAGS),
        keywords=list(DEFAULT_KEYWORDS),
    )


# ---------------------------------------------------------------------------
# Assembler
# ---------------------------------------------------------------------------

class CityAssembler:
    """Combines the per-city generators and the enrichment service."""

    def __init__(
        self,
        enrichment_service: BaseEnrichmentService,
        image_resolver: Optional[ImageResolver] = None,
    ):
        self.enrichment_service = enrichment_service
        self.image_resolver = image_resolver or ImageResolver()

    def _build(self, base: BaseCity, enrichment: EnrichmentResult) -> AssembledCity:
        scores = generate_scores(base)
        return AssembledCity(
            objectID=base.object_id,
            city=base.city,
            country=base.country,
            continent=base.continent,
            description=enrichment.description,
            vibe_tags=list(enrichment.vibe_tags),
            keywords=list(enrichment.keywords or []),
            culture_score=scores.culture_score,
            adventure_score=scores.adventure_score,
            nature_score=scores.nature_score,
            beach_score=scores.beach_score,
            nightlife_score=scores.nightlife_score,
            climate_type=base.climate_type,
            best_time_to_visit=base.best_time_to_visit,
            image_url=self.image_resolver.get_image_url(base.city, base.country),
        )

    async def assemble(
        self,
        base: BaseCity,
        *,
        skip_enrichment: bool = False,
        on_progress: Optional[MessageCallback] = None,
    ) -> AssembledCity:
        """
        Assemble and validate one city.

        Raises:
            CityAssemblyError: the constructed record is invalid.
        """
        if on_progress is not None:
            on_progress(f"Assembling {base.city}...")

        if skip_enrichment:
            enrichment = skipped_enrichment(base)
        else:
            try:
                enrichment = await self.enrichment_service.enrich_one(base)
            except Exception as exc:
                logger.warning(
                    "Enrichment failed for %s (%s), using fallback content",
                    base.city, exc,
                )
                if on_progress is not None:
                    on_progress(
                        f"Warning: LLM enrichment failed for {base.city}, using fallback"
                    )
                enrichment = fallback_enrichment(base)

        assembled = self._build(base, enrichment)
        if not validate_assembled_city(assembled):
            raise CityAssemblyError(f"Invalid assembled city: {base.city}")
        return assembled

    async def assemble_many(
        self,
        cities: Sequence[BaseCity],
        *,
        skip_enrichment: bool = False,
        on_progress: Optional[MessageCallback] = None,
    ) -> list[AssembledCity]:
        """Sequential, input-ordered. Any CityAssemblyError propagates."""
        results: list[AssembledCity] = []
        for city in cities:
            results.append(await self.assemble(
                city,
                skip_enrichment=skip_enrichment,
                on_progress=on_progress,
            ))
        return results

    def assemble_with_enrichment(
        self,
        base: BaseCity,
        enrichment: EnrichmentResult,
    ) -> AssembledCity:
        """Synchronous variant for pre-computed (e.g. cached) enrichment. Not validated."""
        return self._build(base, enrichment)
