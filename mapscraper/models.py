"""
Data model shared across the scraping pipeline.
"""
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional


class ScrapeMode(str, Enum):
    FAST = "fast"
    DETAILED = "detailed"


class PageMode(str, Enum):
    SINGLE = "single"
    LIST = "list"
    EMPTY = "empty"


# Output key order for serialized records
RECORD_KEYS = {
    "name": "name",
    "address": "address",
    "latitude": "latitude",
    "longitude": "longitude",
    "rating": "rating",
    "review_count": "reviewCount",
    "category": "category",
    "phone": "phone",
    "website": "website",
    "maps_url": "mapsUrl",
}


@dataclass(frozen=True)
class PlaceRecord:
    name: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    category: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    maps_url: str = ""

    @property
    def is_emittable(self) -> bool:
        """A record is only worth returning if it has a name or an address"""
        return bool((self.name or "").strip() or (self.address or "").strip())

    @property
    def identity(self) -> tuple:
        return (self.maps_url or "", self.name or "", self.address or "")

    def to_dict(self) -> Dict[str, Any]:
        return {RECORD_KEYS[f.name]: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class SearchTarget:
    query: str
    from_index: int = 1
    to_index: int = 20
    mode: ScrapeMode = ScrapeMode.FAST

    def __post_init__(self):
        if not self.query or not self.query.strip():
            raise ValueError("query must not be empty")
        if self.from_index < 1:
            raise ValueError("from_index must be >= 1")
        if self.to_index < self.from_index:
            raise ValueError("to_index must be >= from_index")
        if not isinstance(self.mode, ScrapeMode):
            object.__setattr__(self, "mode", ScrapeMode(self.mode))

    @property
    def detailed(self) -> bool:
        return self.mode is ScrapeMode.DETAILED


@dataclass
class ScrapeResult:
    results: List[PlaceRecord] = field(default_factory=list)
    total_available: int = 0
    actual_from: int = 0
    actual_to: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "totalAvailable": self.total_available,
            "actualFrom": self.actual_from,
            "actualTo": self.actual_to,
        }
