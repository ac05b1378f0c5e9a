"""
Deterministic image URLs for destinations.

No network calls: URLs are built from a hash of "{city}-{country}" so a
city always maps to the same picture. ``placeholder`` mode renders the city
name as text instead, for previews where a photo would be misleading.
"""

from dataclasses import dataclass
from typing import Iterable, Literal
from urllib.parse import quote, urlparse

from services.destinations.pipeline.score_generator import hash_string

DEFAULT_WIDTH = 800
DEFAULT_HEIGHT = 600

ImageProvider = Literal["picsum", "placeholder"]

PICSUM_URL = "https://picsum.photos/seed/{seed}/{width}/{height}"
PLACEHOLDER_URL = "https://via.placeholder.com/{width}x{height}?text={text}"

CITY_IMAGE_KEYWORDS: dict[str, list[str]] = {
    "tokyo": ["shibuya", "neon", "skyline"],
    "kyoto": ["temple", "garden", "traditional"],
    "paris": ["eiffel", "architecture", "cafe"],
    "london": ["tower-bridge", "big-ben", "city"],
    "rome": ["colosseum", "ancient", "architecture"],
    "barcelona": ["gaudi", "beach", "architecture"],
    "new york": ["manhattan", "skyline", "times-square"],
    "dubai": ["burj-khalifa", "modern", "desert"],
    "bali": ["temple", "beach", "rice-terrace"],
    "sydney": ["opera-house", "harbour", "beach"],
    "cape town": ["table-mountain", "beach", "vineyard"],
    "reykjavik": ["aurora", "geothermal", "landscape"],
    "santorini": ["whitewash", "sunset", "aegean"],
    "marrakech": ["souk", "medina", "architecture"],
    "cusco": ["machu-picchu", "inca", "mountains"],
}


@dataclass
class ImageUrlResult:
    url: str
    is_fallback: bool


class ImageResolver:
    """Builds per-city image URLs of a fixed size."""

    def __init__(
        self,
        width: int = DEFAULT_WIDTH,
        height: int = DEFAULT_HEIGHT,
        provider: ImageProvider = "picsum",
    ):
        self.width = width
        self.height = height
        self.provider = provider

    def get_image_url(self, city: str, country: str) -> str:
        if self.provider == "placeholder":
            return self._placeholder_url(city)
        seed = hash_string(f"{city}-{country}")
        return PICSUM_URL.format(seed=seed, width=self.width, height=self.height)

    def get_image_url_with_result(self, city: str, country: str) -> ImageUrlResult:
        return ImageUrlResult(url=self.get_image_url(city, country), is_fallback=False)

    def get_fallback_url(self) -> str:
        """Same URL for every city; used when per-city resolution is unwanted."""
        if self.provider == "placeholder":
            return self._placeholder_url("travel")
        return PICSUM_URL.format(seed="travel-fallback", width=self.width, height=self.height)

    def get_city_keywords(self, city: str) -> list[str]:
        return list(CITY_IMAGE_KEYWORDS.get(city.lower(), []))

    def get_image_urls_for_cities(
        self,
        cities: Iterable[tuple[str, str]],
    ) -> dict[str, str]:
        """Map "{city}-{country}" -> URL for each (city, country) pair."""
        return {
            f"{city}-{country}": self.get_image_url(city, country)
            for city, country in cities
        }

    @staticmethod
    def validate_url(url: str) -> bool:
        """True only for syntactically valid http(s) URLs with a host."""
        if not isinstance(url, str) or not url:
            return False
        try:
            parsed = urlparse(url)
        except ValueError:
            return False
        return parsed.scheme in ("http", "https") and bool(parsed.netloc)

    def _placeholder_url(self, text: str) -> str:
        return PLACEHOLDER_URL.format(
            width=self.width,
            height=self.height,
            text=quote(text, safe=""),
        )
