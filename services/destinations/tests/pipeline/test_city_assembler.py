"""
Tests for the city assembler.

Covers:
- objectID slugs (diacritics, punctuation, whitespace)
- Assembly with live, skipped and failing enrichment
- Validation gate on assembled records
- Sequential batch assembly
"""

from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

import pytest

from services.destinations.pipeline.base_cities import generate_object_id, slugify
from services.destinations.pipeline.city_assembler import (
    DEFAULT_VIBE_TAGS,
    AssembledCity,
    CityAssembler,
    CityAssemblyError,
    validate_assembled_city,
)
from services.destinations.pipeline.enrichment import (
    BaseEnrichmentService,
    EnrichmentError,
    EnrichmentResult,
    StaticEnrichmentService,
)
from services.destinations.pipeline.image_resolver import ImageResolver
from services.destinations.pipeline.score_generator import generate_scores

from .conftest import make_base_city


def _enrichment_mock(result=None, side_effect=None) -> MagicMock:
    service = MagicMock(spec=BaseEnrichmentService)
    service.enrich_one = AsyncMock(return_value=result, side_effect=side_effect)
    return service


def _valid_record(**overrides) -> dict:
    record = {
        "objectID": "paris-france",
        "city": "Paris",
        "country": "France",
        "continent": "Europe",
        "description": "City of light.",
        "vibe_tags": ["romantic"],
        "culture_score": 9,
        "adventure_score": 4,
        "nature_score": 3,
        "beach_score": 2,
        "nightlife_score": 7,
        "climate_type": "Oceanic",
        "best_time_to_visit": "April to June",
        "image_url": "https://picsum.photos/seed/1/800/600",
        "keywords": [],
    }
    record.update(overrides)
    return record


# ===================================================================
# Slugs
# ===================================================================


class TestSlugs:
    def test_basic(self):
        assert generate_object_id("Paris", "France") == "paris-france"

    def test_multi_word(self):
        assert generate_object_id("New York", "United States") == "new-york-united-states"

    def test_diacritics_stripped(self):
        assert generate_object_id("São Paulo", "Brazil") == "sao-paulo-brazil"
        assert generate_object_id("Medellín", "Colombia") == "medellin-colombia"

    def test_punctuation_removed(self):
        assert slugify("Xi'an") == "xian"
        assert slugify("St. John's") == "st-johns"

    def test_collapses_whitespace_and_hyphens(self):
        assert slugify("  Rio   de -- Janeiro ") == "rio-de-janeiro"

    def test_ascii_only(self):
        slug = generate_object_id("Zürich", "Schweiz")
        assert slug == "zurich-schweiz"
        assert slug.isascii()


# ===================================================================
# Assembly
# ===================================================================


class TestAssemble:
    @pytest.mark.asyncio
    async def test_with_enrichment(self, paris):
        enrichment = EnrichmentResult(
            description="City of light.", vibe_tags=["romantic", "artistic"], keywords=["louvre"],
        )
        service = _enrichment_mock(result=enrichment)
        city = await CityAssembler(service).assemble(paris)

        assert isinstance(city, AssembledCity)
        assert city.objectID == "paris-france"
        assert city.description == "City of light."
        assert city.vibe_tags == ["romantic", "artistic"]
        assert city.keywords == ["louvre"]
        assert city.continent == "Europe"
        assert city.climate_type == "Oceanic"
        assert city.image_url == ImageResolver().get_image_url("Paris", "France")
        scores = generate_scores(paris)
        assert city.culture_score == scores.culture_score
        assert city.beach_score == scores.beach_score
        assert validate_assembled_city(city)
        service.enrich_one.assert_awaited_once_with(paris)

    @pytest.mark.asyncio
    async def test_skip_enrichment_never_calls_service(self, paris):
        service = _enrichment_mock()
        city = await CityAssembler(service).assemble(paris, skip_enrichment=True)

        service.enrich_one.assert_not_awaited()
        assert city.description.startswith("Paris, France - ")
        assert city.vibe_tags == DEFAULT_VIBE_TAGS
        assert validate_assembled_city(city)

    @pytest.mark.asyncio
    async def test_enrichment_failure_falls_back(self, tokyo):
        service = _enrichment_mock(side_effect=EnrichmentError("bad json"))
        messages: list[str] = []
        city = await CityAssembler(service).assemble(tokyo, on_progress=messages.append)

        assert "Tokyo" in city.description
        assert "Japan" in city.description
        assert city.vibe_tags == ["cultural", "scenic", "welcoming"]
        assert validate_assembled_city(city)
        assert any("Warning" in m and "Tokyo" in m for m in messages)

    @pytest.mark.asyncio
    async def test_any_exception_falls_back(self, paris):
        service = _enrichment_mock(side_effect=RuntimeError("network down"))
        city = await CityAssembler(service).assemble(paris)
        assert "captivating destination in France" in city.description

    @pytest.mark.asyncio
    async def test_progress_message(self, paris):
        messages: list[str] = []
        await CityAssembler(StaticEnrichmentService()).assemble(paris, on_progress=messages.append)
        assert messages == ["Assembling Paris..."]

    @pytest.mark.asyncio
    async def test_invalid_enrichment_raises(self, paris):
        service = _enrichment_mock(result=EnrichmentResult(description="", vibe_tags=["x"]))
        with pytest.raises(CityAssemblyError, match="Invalid assembled city: Paris"):
            await CityAssembler(service).assemble(paris)

    @pytest.mark.asyncio
    async def test_custom_image_resolver(self, paris):
        resolver = ImageResolver(provider="placeholder")
        city = await CityAssembler(StaticEnrichmentService(), resolver).assemble(paris)
        assert city.image_url.startswith("https://via.placeholder.com/")

    @pytest.mark.asyncio
    async def test_assemble_many_sequential_in_order(self):
        cities = [
            make_base_city(city="Rome", country="Italy"),
            make_base_city(city="Lisbon", country="Portugal"),
        ]
        service = StaticEnrichmentService()
        result = await CityAssembler(service).assemble_many(cities)
        assert [c.objectID for c in result] == ["rome-italy", "lisbon-portugal"]
        assert service.calls == 2

    def test_assemble_with_enrichment_sync(self, paris):
        enrichment = EnrichmentResult(description="Cached.", vibe_tags=["cached"])
        city = CityAssembler(StaticEnrichmentService()).assemble_with_enrichment(paris, enrichment)
        assert city.description == "Cached."
        assert city.keywords == []

    def test_to_record_round_trips_fields(self, paris):
        enrichment = EnrichmentResult(description="Cached.", vibe_tags=["cached"])
        city = CityAssembler(StaticEnrichmentService()).assemble_with_enrichment(paris, enrichment)
        record = city.to_record()
        assert record["objectID"] == "paris-france"
        assert set(record) == set(_valid_record())


# ===================================================================
# Validation
# ===================================================================


class TestValidateAssembledCity:
    def test_valid_dict(self):
        assert validate_assembled_city(_valid_record())

    def test_valid_dataclass(self):
        assert validate_assembled_city(AssembledCity(**_valid_record()))

    @pytest.mark.parametrize("overrides", [
        {"objectID": ""},
        {"city": ""},
        {"description": ""},
        {"image_url": ""},
        {"continent": None},
        {"vibe_tags": []},
        {"vibe_tags": "romantic"},
        {"vibe_tags": ["ok", 3]},
        {"culture_score": 0},
        {"beach_score": 11},
        {"nature_score": 7.5},
        {"nightlife_score": "7"},
    ])
    def test_invalid_fields(self, overrides):
        assert not validate_assembled_city(_valid_record(**overrides))

    def test_missing_field(self):
        record = _valid_record()
        del record["adventure_score"]
        assert not validate_assembled_city(record)

    def test_non_record(self):
        assert not validate_assembled_city(None)
        assert not validate_assembled_city(["paris-france"])

    def test_dataclass_with_bad_score(self):
        city = replace(AssembledCity(**_valid_record()), culture_score=0)
        assert not validate_assembled_city(city)
