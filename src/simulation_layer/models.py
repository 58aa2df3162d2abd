"""
Shared data models for the simulation layer.

WorldState and its parts are immutable snapshots: the store replaces them
wholesale (or builds a modified copy with dataclasses.replace), never edits
them in place.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple


CHANGE_TAGS = ("brighter", "dimmer", "new", "gone", "unchanged")

MIN_TECH_LEVEL = 1
MAX_TECH_LEVEL = 10


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp_brightness(value: float) -> float:
    return clamp(float(value), 0.0, 1.0)


def clamp_tech_level(value: float) -> int:
    return int(clamp(round(value), MIN_TECH_LEVEL, MAX_TECH_LEVEL))


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float


@dataclass(frozen=True)
class City:
    """A settlement on the globe."""

    id: str
    name: str
    lat: float
    lng: float
    population: int
    brightness: float  # 0~1
    tech_level: int  # 1~10
    civilization: str
    description: str
    pros: Optional[str] = None
    cons: Optional[str] = None
    causal_note: Optional[str] = None
    change: Optional[str] = None  # one of CHANGE_TAGS, None = unchanged

    def __post_init__(self):
        # frozen: bypass __setattr__ to store the clamped values
        object.__setattr__(self, "brightness", clamp_brightness(self.brightness))
        object.__setattr__(self, "tech_level", clamp_tech_level(self.tech_level))
        object.__setattr__(self, "population", max(0, int(self.population)))
        if self.change is not None and self.change not in CHANGE_TAGS:
            raise ValueError(f"Unknown change tag: {self.change}")

    @property
    def location(self) -> GeoPoint:
        return GeoPoint(self.lat, self.lng)


@dataclass(frozen=True)
class RouteEndpoint:
    lat: float
    lng: float
    city: str


@dataclass(frozen=True)
class TradeRoute:
    id: str
    origin: RouteEndpoint
    destination: RouteEndpoint
    volume: float
    description: str
    causal_note: Optional[str] = None


@dataclass(frozen=True)
class Region:
    """Rough territorial blob, not geometrically authoritative."""

    id: str
    civilization: str
    color: str
    center: GeoPoint
    radius: float  # degrees


@dataclass(frozen=True)
class WorldState:
    year: int
    epoch: int
    cities: Tuple[City, ...]
    trade_routes: Tuple[TradeRoute, ...]
    regions: Tuple[Region, ...]
    narrative: str

    def find_city(self, city_id: str) -> Optional[City]:
        for city in self.cities:
            if city.id == city_id:
                return city
        return None


@dataclass(frozen=True)
class Intervention:
    """A single player decision. Appended to the history, never edited."""

    id: str
    description: str
    lat: float
    lng: float
    epoch: int
    year: int


@dataclass(frozen=True)
class Milestone:
    year: int
    lat: float
    lng: float
    event: str
    causal_link: str


@dataclass(frozen=True)
class SurprisingConsequence:
    lat: float
    lng: float
    description: str
    causal_chain: Tuple[str, ...]
    image_prompt: Optional[str] = None


@dataclass(frozen=True)
class InterventionResult:
    """Authoritative outcome of one intervention. A full snapshot, not a diff."""

    cities: Tuple[City, ...]
    trade_routes: Tuple[TradeRoute, ...]
    regions: Tuple[Region, ...]
    narrative: str
    narration_script: str
    milestones: Tuple[Milestone, ...]
    most_surprising: SurprisingConsequence


@dataclass(frozen=True)
class ScoreReport:
    score: int  # 0~100
    summary: str
    causal_chain: Tuple[str, ...]


@dataclass(frozen=True)
class GameResult:
    score: int  # 0~100
    summary: str
    causal_chain: Tuple[str, ...]
    final_image: Optional[str] = None  # base64 payload


@dataclass(frozen=True)
class Suggestion:
    text: str
    reasoning: str


@dataclass(frozen=True)
class RegionContext:
    description: str
    suggestions: Tuple[Suggestion, ...] = field(default_factory=tuple)
