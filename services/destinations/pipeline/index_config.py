"""
Search index settings and synonyms for the destinations index.

Applied by the orchestrator's initialization stage before any upload.
"""

from typing import Any

INDEX_NAME = "travel_destinations"

SEARCHABLE_ATTRIBUTES = [
    "city",
    "country",
    "description",
    "vibe_tags",
    "keywords",
]

ATTRIBUTES_FOR_FACETING = [
    "filterOnly(continent)",
    "searchable(climate_type)",
    "searchable(vibe_tags)",
    "culture_score",
    "adventure_score",
    "nature_score",
    "beach_score",
    "nightlife_score",
]

CUSTOM_RANKING = [
    "desc(culture_score)",
    "desc(nightlife_score)",
]

RANKING = [
    "typo",
    "geo",
    "words",
    "filters",
    "proximity",
    "attribute",
    "exact",
    "custom",
]

DEFAULT_INDEX_SETTINGS: dict[str, Any] = {
    "searchableAttributes": SEARCHABLE_ATTRIBUTES,
    "attributesForFaceting": ATTRIBUTES_FOR_FACETING,
    "customRanking": CUSTOM_RANKING,
    "ranking": RANKING,
    "attributesToHighlight": ["city", "country", "description", "vibe_tags"],
    "attributesToSnippet": ["description:50"],
    "highlightPreTag": "<mark>",
    "highlightPostTag": "</mark>",
    "hitsPerPage": 20,
}


def _synonym(object_id: str, *words: str) -> dict[str, Any]:
    return {"objectID": object_id, "type": "synonym", "synonyms": list(words)}


DEFAULT_SYNONYMS: list[dict[str, Any]] = [
    _synonym("romantic-synonyms",
             "romantic", "honeymoon", "couples", "love", "wedding destination", "anniversary"),
    _synonym("beach-synonyms",
             "beach", "coastal", "seaside", "ocean", "tropical", "island"),
    _synonym("temples-synonyms",
             "temples", "spiritual", "religious", "shrines", "sacred", "ancient"),
    _synonym("nightlife-synonyms",
             "nightlife", "party", "clubs", "bars", "entertainment", "vibrant"),
    _synonym("cultural-synonyms",
             "cultural", "historic", "heritage", "museums", "art", "history"),
    _synonym("adventure-synonyms",
             "adventure", "hiking", "outdoor", "active", "extreme", "exploration"),
    _synonym("relaxing-synonyms",
             "relaxing", "peaceful", "tranquil", "spa", "wellness", "retreat"),
    _synonym("family-synonyms",
             "family-friendly", "kids", "children", "family vacation", "family trip"),
]
