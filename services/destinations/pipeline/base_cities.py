"""
Base city catalog.

Loads the bundled destination dataset (``data/base_cities.json``), drops
malformed entries and deduplicates on the lowercased (city, country) pair.
First occurrence wins and original order is preserved, so the catalog is
stable across runs and ``city_count`` truncation is reproducible.
Entries that differ only in spelling but slug to an objectID already in
the catalog ("Sao Paulo" after "São Paulo") are dropped with a warning.

Malformed entries are data-cleaning noise, not errors: they are dropped
silently (logged at DEBUG only).
"""

import json
import logging
import re
import unicodedata
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Literal, Optional

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DATA_PATH = Path(__file__).parent / "data" / "base_cities.json"

Continent = Literal[
    "Africa",
    "Antarctica",
    "Asia",
    "Europe",
    "North America",
    "South America",
    "Oceania",
]

# Antarctica is a valid Continent value but never a valid catalog entry
VALID_CONTINENTS: tuple[str, ...] = (
    "Africa",
    "Asia",
    "Europe",
    "North America",
    "South America",
    "Oceania",
)

_REQUIRED_FIELDS = ("city", "country", "continent", "climate_type", "best_time_to_visit")


# ---------------------------------------------------------------------------
# Slugs
# ---------------------------------------------------------------------------

def slugify(text: str) -> str:
    """ASCII, lowercase, hyphen-separated slug; diacritics stripped."""
    normalized = unicodedata.normalize("NFD", str(text))
    stripped = "".join(ch for ch in normalized if not unicodedata.combining(ch))
    slug = stripped.lower().strip()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def generate_object_id(city: str, country: str) -> str:
    return f"{slugify(city)}-{slugify(country)}"


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BaseCity:
    """Minimal city record before scoring and enrichment."""
    city: str
    country: str
    continent: Continent
    climate_type: str
    best_time_to_visit: str

    @property
    def key(self) -> tuple[str, str]:
        """Dedup key: lowercased (city, country) pair."""
        return (self.city.lower(), self.country.lower())

    @property
    def object_id(self) -> str:
        return generate_object_id(self.city, self.country)


# ---------------------------------------------------------------------------
# Loading + validation
# ---------------------------------------------------------------------------

def load_raw_catalog(path: Path = DATA_PATH) -> list[Any]:
    """Read the static dataset. Returns the raw JSON array."""
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        logger.warning("Catalog at %s is not a JSON array, ignoring", path)
        return []
    return data


def is_valid_continent(value: Any) -> bool:
    return isinstance(value, str) and value in VALID_CONTINENTS


def _to_base_city(item: Any) -> Optional[BaseCity]:
    """Convert one raw entry, or return None if it is malformed."""
    if not isinstance(item, dict):
        return None

    for name in _REQUIRED_FIELDS:
        value = item.get(name)
        if not isinstance(value, str) or not value:
            return None

    if not is_valid_continent(item["continent"]):
        return None

    return BaseCity(
        city=item["city"],
        country=item["country"],
        continent=item["continent"],
        climate_type=item["climate_type"],
        best_time_to_visit=item["best_time_to_visit"],
    )


def generate_base_cities(raw_entries: Optional[Iterable[Any]] = None) -> list[BaseCity]:
    """
    Build the deduplicated base catalog.

    Args:
        raw_entries: Override the bundled dataset (tests, alternate catalogs).

    Returns:
        Valid, unique BaseCity records in original order.
    """
    entries = load_raw_catalog() if raw_entries is None else list(raw_entries)

    seen: set[tuple[str, str]] = set()
    seen_ids: set[str] = set()
    cities: list[BaseCity] = []
    dropped = 0

    for item in entries:
        city = _to_base_city(item)
        if city is None:
            dropped += 1
            continue
        if city.key in seen:
            dropped += 1
            continue
        if city.object_id in seen_ids:
            # e.g. "Sao Paulo" after "São Paulo": same index record
            logger.warning(
                "Dropping %s, %s: objectID %s already in catalog",
                city.city, city.country, city.object_id,
            )
            dropped += 1
            continue
        seen.add(city.key)
        seen_ids.add(city.object_id)
        cities.append(city)

    logger.debug(
        "Catalog: %d entries -> %d cities (%d dropped)",
        len(entries), len(cities), dropped,
    )
    return cities


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def get_continents(cities: list[BaseCity]) -> list[str]:
    """Distinct continents in first-seen order."""
    continents: list[str] = []
    for city in cities:
        if is_valid_continent(city.continent) and city.continent not in continents:
            continents.append(city.continent)
    return continents


def get_cities_by_continent(cities: list[BaseCity], continent: str) -> list[BaseCity]:
    return [c for c in cities if c.continent == continent]


def get_city_by_name(cities: list[BaseCity], name: str) -> Optional[BaseCity]:
    """Case-insensitive lookup by city name."""
    target = name.lower()
    for city in cities:
        if city.city.lower() == target:
            return city
    return None
