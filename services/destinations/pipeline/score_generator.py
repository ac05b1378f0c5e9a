"""
Deterministic reputation scores per city.

Five integer dimensions in [1, 10]: culture, adventure, nature, beach,
nightlife. Each value is drawn from a tier-dependent range using a 32-bit
string hash of "{city}-{country}-{dimension}", so the same BaseCity always
yields the same scores -- across calls, processes and implementations.

Tiers:
  - Membership in a curated set (cultural capitals, party cities, ...) moves
    the dimension into its high range.
  - A coastal climate gives an intermediate beach range when the city is not
    already a recognised beach destination.
"""

from dataclasses import dataclass
from typing import Any

from services.destinations.pipeline.base_cities import BaseCity

# ---------------------------------------------------------------------------
# Curated membership sets (lowercased city names)
# ---------------------------------------------------------------------------

BEACH_CITIES: frozenset[str] = frozenset({
    "miami", "cancun", "bali", "rio de janeiro", "barcelona", "sydney",
    "cape town", "dubai", "amalfi", "santorini", "dubrovnik", "lisbon",
    "havana", "cartagena", "zanzibar", "fiji", "queenstown", "auckland",
    "ibiza",
})

CULTURAL_CAPITALS: frozenset[str] = frozenset({
    "paris", "rome", "london", "tokyo", "kyoto", "vienna", "athens", "cairo",
    "beijing", "florence", "prague", "istanbul", "barcelona", "amsterdam",
    "berlin", "new york", "buenos aires", "mexico city", "marrakech", "cusco",
    "edinburgh",
})

PARTY_CITIES: frozenset[str] = frozenset({
    "tokyo", "seoul", "bangkok", "berlin", "amsterdam", "barcelona",
    "new york", "miami", "new orleans", "rio de janeiro", "buenos aires",
    "ibiza", "las vegas", "hong kong", "singapore", "london", "los angeles",
    "cancun", "havana", "medellín",
})

ADVENTURE_DESTINATIONS: frozenset[str] = frozenset({
    "queenstown", "cape town", "cusco", "reykjavik", "bali", "nairobi",
    "vancouver", "medellín", "zanzibar", "fiji", "auckland", "sydney",
    "dubai", "melbourne",
})

NATURE_RICH: frozenset[str] = frozenset({
    "reykjavik", "queenstown", "vancouver", "cape town", "bali", "fiji",
    "nairobi", "cusco", "auckland", "sydney", "melbourne", "zanzibar",
    "santorini", "santiago",
})

COASTAL_CLIMATES: frozenset[str] = frozenset({
    "tropical monsoon",
    "tropical marine",
    "mediterranean",
    "tropical wet and dry",
    "tropical savanna",
    "oceanic",
})

# (base range, high range) per dimension
SCORE_RANGES: dict[str, tuple[tuple[int, int], tuple[int, int]]] = {
    "culture": ((4, 7), (8, 10)),
    "adventure": ((3, 6), (7, 10)),
    "nature": ((3, 6), (7, 10)),
    "beach": ((1, 4), (7, 10)),
    "nightlife": ((4, 6), (7, 10)),
}
COASTAL_BEACH_RANGE = (4, 7)

SCORE_MIN = 1
SCORE_MAX = 10

SCORE_FIELDS: tuple[str, ...] = (
    "culture_score",
    "adventure_score",
    "nature_score",
    "beach_score",
    "nightlife_score",
)


@dataclass(frozen=True)
class CityScores:
    culture_score: int
    adventure_score: int
    nature_score: int
    beach_score: int
    nightlife_score: int


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------

def hash_string(value: str) -> int:
    """
    31-multiplier string hash, wrapped to signed 32-bit, absolute value.

    Iterates UTF-16 code units so non-BMP characters hash the same way
    they would in a UTF-16 string runtime.
    """
    h = 0
    data = value.encode("utf-16-le")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = (h * 31 + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def deterministic_int(seed: str, low: int, high: int) -> int:
    """Map a seed string onto the inclusive range [low, high]."""
    return low + hash_string(seed) % (high - low + 1)


def clamp(value: int, low: int = SCORE_MIN, high: int = SCORE_MAX) -> int:
    return max(low, min(high, value))


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def _tiered(seed_base: str, dimension: str, high: bool) -> int:
    (base_lo, base_hi), (high_lo, high_hi) = SCORE_RANGES[dimension]
    if high:
        return deterministic_int(f"{seed_base}-{dimension}-high", high_lo, high_hi)
    return deterministic_int(f"{seed_base}-{dimension}", base_lo, base_hi)


def generate_scores(city: BaseCity) -> CityScores:
    """Pure, deterministic scores for one city."""
    name = city.city.lower()
    climate = city.climate_type.lower()
    seed_base = f"{city.city}-{city.country}"

    culture = _tiered(seed_base, "culture", name in CULTURAL_CAPITALS)
    adventure = _tiered(seed_base, "adventure", name in ADVENTURE_DESTINATIONS)
    nature = _tiered(seed_base, "nature", name in NATURE_RICH)
    nightlife = _tiered(seed_base, "nightlife", name in PARTY_CITIES)

    if name in BEACH_CITIES:
        beach = _tiered(seed_base, "beach", True)
    elif climate in COASTAL_CLIMATES:
        beach = deterministic_int(f"{seed_base}-beach-coastal", *COASTAL_BEACH_RANGE)
    else:
        beach = _tiered(seed_base, "beach", False)

    return CityScores(
        culture_score=clamp(culture),
        adventure_score=clamp(adventure),
        nature_score=clamp(nature),
        beach_score=clamp(beach),
        nightlife_score=clamp(nightlife),
    )


def is_valid_score(value: Any) -> bool:
    """Integer (not bool, not float) in [1, 10]."""
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and SCORE_MIN <= value <= SCORE_MAX
    )


def validate_scores(scores: CityScores) -> bool:
    return all(is_valid_score(getattr(scores, name)) for name in SCORE_FIELDS)
