"""
Validation layer for generator payloads.

The generator answers in loose, camelCase JSON. Every payload passes through
these models before it may become authoritative: ranges are clamped, change
tags normalised, and missing fields rejected (pydantic.ValidationError).
"""

import json
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.simulation_layer.models import (
    CHANGE_TAGS,
    City,
    GameResult,
    GeoPoint,
    Intervention,
    InterventionResult,
    Milestone,
    Region,
    RegionContext,
    RouteEndpoint,
    ScoreReport,
    Suggestion,
    SurprisingConsequence,
    TradeRoute,
    WorldState,
    clamp,
    clamp_brightness,
    clamp_tech_level,
)


class PayloadModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class PointPayload(PayloadModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class CityPayload(PayloadModel):
    id: str = Field(min_length=1)
    name: str
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    population: int
    brightness: float
    tech_level: int
    civilization: str
    description: str = ""
    pros: Optional[str] = None
    cons: Optional[str] = None
    causal_note: Optional[str] = None
    change: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("population", mode="before")
    @classmethod
    def _non_negative_population(cls, value: Any) -> Any:
        if isinstance(value, (int, float)):
            return max(0, int(value))
        return value

    @field_validator("brightness", mode="after")
    @classmethod
    def _clamp_brightness(cls, value: float) -> float:
        return clamp_brightness(value)

    @field_validator("tech_level", mode="before")
    @classmethod
    def _clamp_tech_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                value = float(value)
            except ValueError:
                return value
        if isinstance(value, (int, float)):
            return clamp_tech_level(value)
        return value

    @field_validator("change", mode="before")
    @classmethod
    def _normalise_change(cls, value: Any) -> Optional[str]:
        if not isinstance(value, str):
            return None
        tag = value.strip().lower()
        return tag if tag in CHANGE_TAGS else None

    def to_domain(self) -> City:
        return City(
            id=self.id,
            name=self.name,
            lat=self.lat,
            lng=self.lng,
            population=self.population,
            brightness=self.brightness,
            tech_level=self.tech_level,
            civilization=self.civilization,
            description=self.description,
            pros=self.pros,
            cons=self.cons,
            causal_note=self.causal_note,
            change=self.change,
        )

    @classmethod
    def from_domain(cls, city: City) -> "CityPayload":
        return cls(
            id=city.id,
            name=city.name,
            lat=city.lat,
            lng=city.lng,
            population=city.population,
            brightness=city.brightness,
            tech_level=city.tech_level,
            civilization=city.civilization,
            description=city.description,
            pros=city.pros,
            cons=city.cons,
            causal_note=city.causal_note,
            change=city.change,
        )


class EndpointPayload(PointPayload):
    city: str = ""


class TradeRoutePayload(PayloadModel):
    id: str
    origin: EndpointPayload = Field(alias="from")
    destination: EndpointPayload = Field(alias="to")
    volume: float = 1.0
    description: str = ""
    causal_note: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("volume", mode="after")
    @classmethod
    def _positive_volume(cls, value: float) -> float:
        return value if value > 0 else 1.0

    def to_domain(self) -> TradeRoute:
        return TradeRoute(
            id=self.id,
            origin=RouteEndpoint(self.origin.lat, self.origin.lng, self.origin.city),
            destination=RouteEndpoint(
                self.destination.lat, self.destination.lng, self.destination.city
            ),
            volume=self.volume,
            description=self.description,
            causal_note=self.causal_note,
        )

    @classmethod
    def from_domain(cls, route: TradeRoute) -> "TradeRoutePayload":
        return cls(
            id=route.id,
            origin=EndpointPayload(
                lat=route.origin.lat, lng=route.origin.lng, city=route.origin.city
            ),
            destination=EndpointPayload(
                lat=route.destination.lat, lng=route.destination.lng, city=route.destination.city
            ),
            volume=route.volume,
            description=route.description,
            causal_note=route.causal_note,
        )


class RegionPayload(PayloadModel):
    id: str
    civilization: str
    color: str = "#888888"
    center: PointPayload
    radius: float = Field(gt=0)

    @field_validator("radius", mode="after")
    @classmethod
    def _cap_radius(cls, value: float) -> float:
        return clamp(value, 0.0, 180.0)

    def to_domain(self) -> Region:
        return Region(
            id=self.id,
            civilization=self.civilization,
            color=self.color,
            center=GeoPoint(self.center.lat, self.center.lng),
            radius=self.radius,
        )

    @classmethod
    def from_domain(cls, region: Region) -> "RegionPayload":
        return cls(
            id=region.id,
            civilization=region.civilization,
            color=region.color,
            center=PointPayload(lat=region.center.lat, lng=region.center.lng),
            radius=region.radius,
        )


class WorldStatePayload(PayloadModel):
    year: int
    epoch: int = Field(ge=1)
    cities: List[CityPayload]
    trade_routes: List[TradeRoutePayload] = Field(default_factory=list)
    regions: List[RegionPayload] = Field(default_factory=list)
    narrative: str = ""

    def to_domain(self) -> WorldState:
        return WorldState(
            year=self.year,
            epoch=self.epoch,
            cities=tuple(c.to_domain() for c in self.cities),
            trade_routes=tuple(r.to_domain() for r in self.trade_routes),
            regions=tuple(r.to_domain() for r in self.regions),
            narrative=self.narrative,
        )

    @classmethod
    def from_domain(cls, world: WorldState) -> "WorldStatePayload":
        return cls(
            year=world.year,
            epoch=world.epoch,
            cities=[CityPayload.from_domain(c) for c in world.cities],
            trade_routes=[TradeRoutePayload.from_domain(r) for r in world.trade_routes],
            regions=[RegionPayload.from_domain(r) for r in world.regions],
            narrative=world.narrative,
        )


class InterventionPayload(PayloadModel):
    id: str
    description: str
    lat: float
    lng: float
    epoch: int
    year: int

    @classmethod
    def from_domain(cls, intervention: Intervention) -> "InterventionPayload":
        return cls(
            id=intervention.id,
            description=intervention.description,
            lat=intervention.lat,
            lng=intervention.lng,
            epoch=intervention.epoch,
            year=intervention.year,
        )


class MilestonePayload(PayloadModel):
    year: int
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    event: str
    causal_link: str = ""

    @field_validator("year", mode="before")
    @classmethod
    def _round_year(cls, value: Any) -> Any:
        if isinstance(value, float):
            return int(round(value))
        return value

    def to_domain(self) -> Milestone:
        return Milestone(self.year, self.lat, self.lng, self.event, self.causal_link)


class SurprisePayload(PayloadModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    description: str
    causal_chain: List[str] = Field(default_factory=list)
    image_prompt: Optional[str] = None

    def to_domain(self) -> SurprisingConsequence:
        return SurprisingConsequence(
            lat=self.lat,
            lng=self.lng,
            description=self.description,
            causal_chain=tuple(self.causal_chain),
            image_prompt=self.image_prompt,
        )


class InterventionResultPayload(PayloadModel):
    milestones: List[MilestonePayload] = Field(default_factory=list)
    cities_affected: List[CityPayload] = Field(min_length=1)
    trade_routes: List[TradeRoutePayload] = Field(default_factory=list)
    regions: List[RegionPayload] = Field(default_factory=list)
    world_narrative: str
    narration_script: str = ""
    most_surprising: SurprisePayload

    @field_validator("cities_affected", mode="after")
    @classmethod
    def _unique_city_ids(cls, cities: List[CityPayload]) -> List[CityPayload]:
        seen = set()
        for city in cities:
            if city.id in seen:
                raise ValueError(f"duplicate city id: {city.id}")
            seen.add(city.id)
        return cities

    def to_domain(self) -> InterventionResult:
        return InterventionResult(
            cities=tuple(c.to_domain() for c in self.cities_affected),
            trade_routes=tuple(r.to_domain() for r in self.trade_routes),
            regions=tuple(r.to_domain() for r in self.regions),
            narrative=self.world_narrative,
            narration_script=self.narration_script,
            milestones=tuple(m.to_domain() for m in self.milestones),
            most_surprising=self.most_surprising.to_domain(),
        )


class ScorePayload(PayloadModel):
    score: int
    summary: str
    causal_chain: List[str] = Field(default_factory=list)

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, value: Any) -> Any:
        if isinstance(value, (int, float)):
            return int(clamp(round(value), 0, 100))
        return value

    def to_domain(self) -> ScoreReport:
        return ScoreReport(self.score, self.summary, tuple(self.causal_chain))


class SuggestionPayload(PayloadModel):
    text: str
    reasoning: str = ""


class RegionContextPayload(PayloadModel):
    description: str
    suggestions: List[SuggestionPayload] = Field(default_factory=list)

    def to_domain(self) -> RegionContext:
        return RegionContext(
            description=self.description,
            suggestions=tuple(Suggestion(s.text, s.reasoning) for s in self.suggestions),
        )


class GameResultPayload(PayloadModel):
    score: int
    summary: str
    causal_chain: List[str]
    final_image: Optional[str] = None

    @classmethod
    def from_domain(cls, result: GameResult) -> "GameResultPayload":
        return cls(
            score=result.score,
            summary=result.summary,
            causal_chain=list(result.causal_chain),
            final_image=result.final_image,
        )


def world_to_json(world: WorldState) -> Dict[str, Any]:
    """camelCase dict of a snapshot, the shape the generator is prompted with."""
    return WorldStatePayload.from_domain(world).model_dump(by_alias=True, exclude_none=True)


def extract_json(text: str) -> Dict[str, Any]:
    """
    LLM 응답에서 JSON 객체 추출.

    Strips markdown code fences and any prose around the outermost object.
    Raises ValueError when no JSON object can be decoded.
    """
    text = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', text or "")

    if "```json" in text:
        text = text.split("```json")[1].split("```")[0]
    elif "```" in text:
        text = text.split("```")[1].split("```")[0]

    start = text.find("{")
    end = text.rfind("}") + 1
    if start == -1 or end <= start:
        raise ValueError("no JSON object in response")

    data = json.loads(text[start:end])
    if not isinstance(data, dict):
        raise ValueError("response JSON is not an object")
    return data
