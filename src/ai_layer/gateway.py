"""
Intervention Gateway: the only door to the external generator.

    submit          world + intervention + history + year bounds -> InterventionResult
    score           history + final world + goal                  -> ScoreReport
    render_image    world + goal                                  -> base64 image or None
    describe_region lat/lng + world                               -> RegionContext

Every failure (transport, LLM, malformed JSON, payload validation) surfaces
as GatewayError. There is no partial success.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence

from pydantic import ValidationError

from config import Settings, get_settings
from src.ai_layer.llm_client import LLMCallFailedError, LLMClient, create_llm_client
from src.ai_layer.prompts import (
    FINAL_IMAGE,
    INTERVENE,
    REGION_CONTEXT,
    SCORE,
    SYSTEM,
    load_prompt,
    render_prompt,
)
from src.ai_layer.schemas import (
    InterventionPayload,
    InterventionResultPayload,
    RegionContextPayload,
    ScorePayload,
    extract_json,
    world_to_json,
)
from src.simulation_layer.epochs import format_year
from src.simulation_layer.models import (
    City,
    GeoPoint,
    Intervention,
    InterventionResult,
    Milestone,
    RegionContext,
    ScoreReport,
    Suggestion,
    SurprisingConsequence,
    TradeRoute,
    WorldState,
    clamp,
)


logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Generation failed or produced an unusable payload."""
    pass


@dataclass(frozen=True)
class SubmissionRequest:
    """Everything the generator needs to resolve one intervention."""

    world: WorldState  # last authoritative snapshot, never the optimistic overlay
    description: str
    target: GeoPoint
    history: Sequence[Intervention]  # includes the new intervention as last entry
    start_year: int
    end_year: int
    chosen_city: Optional[City] = None


class InterventionGateway(ABC):

    @abstractmethod
    async def submit(self, request: SubmissionRequest) -> InterventionResult:
        ...

    @abstractmethod
    async def score(
        self, history: Sequence[Intervention], final_world: WorldState, goal: str
    ) -> ScoreReport:
        ...

    @abstractmethod
    async def render_image(self, world: WorldState, goal: str) -> Optional[str]:
        ...

    @abstractmethod
    async def describe_region(self, lat: float, lng: float, world: WorldState) -> RegionContext:
        ...


def _history_json(history: Sequence[Intervention]) -> str:
    return json.dumps(
        [InterventionPayload.from_domain(i).model_dump(by_alias=True) for i in history],
        indent=2,
        ensure_ascii=False,
    )


class LLMInterventionGateway(InterventionGateway):
    """Gateway backed by a text/image LLM."""

    def __init__(self, client: LLMClient):
        self.client = client
        self.system_prompt = load_prompt(SYSTEM)

    async def _ask(self, prompt: str) -> dict:
        try:
            response = await self.client.generate(
                prompt, system_prompt=self.system_prompt, json_mode=True
            )
            return extract_json(response)
        except LLMCallFailedError as e:
            raise GatewayError(str(e)) from e
        except ValueError as e:
            raise GatewayError(f"Unparseable generator response: {e}") from e

    async def submit(self, request: SubmissionRequest) -> InterventionResult:
        chosen_city_line = ""
        if request.chosen_city is not None:
            chosen_city_line = (
                f"The player's home city is {request.chosen_city.name} "
                f"(id {request.chosen_city.id}); report its fate explicitly."
            )

        prompt = render_prompt(
            INTERVENE,
            year_span=f"{abs(request.end_year - request.start_year):,}",
            current_state=json.dumps(world_to_json(request.world), indent=2, ensure_ascii=False),
            previous_interventions=_history_json(request.history),
            lat=request.target.lat,
            lng=request.target.lng,
            intervention=request.description,
            chosen_city_line=chosen_city_line,
            start_year=format_year(request.start_year),
            end_year=format_year(request.end_year),
        )

        data = await self._ask(prompt)
        try:
            return InterventionResultPayload.model_validate(data).to_domain()
        except (ValidationError, ValueError) as e:
            raise GatewayError(f"Invalid intervention payload: {e}") from e

    async def score(self, history, final_world, goal):
        prompt = render_prompt(
            SCORE,
            goal=goal,
            interventions=_history_json(history),
            final_state=json.dumps(world_to_json(final_world), indent=2, ensure_ascii=False),
        )
        data = await self._ask(prompt)
        try:
            return ScorePayload.model_validate(data).to_domain()
        except ValidationError as e:
            raise GatewayError(f"Invalid score payload: {e}") from e

    async def render_image(self, world, goal):
        top_cities = sorted(world.cities, key=lambda c: c.brightness, reverse=True)[:5]
        prompt = render_prompt(
            FINAL_IMAGE,
            year=format_year(world.year),
            goal=goal,
            narrative=world.narrative,
            cities=", ".join(c.name for c in top_cities) or "none",
        )
        try:
            return await self.client.generate_image(prompt)
        except LLMCallFailedError as e:
            raise GatewayError(str(e)) from e

    async def describe_region(self, lat, lng, world):
        prompt = render_prompt(
            REGION_CONTEXT,
            current_state=json.dumps(world_to_json(world), indent=2, ensure_ascii=False),
            lat=lat,
            lng=lng,
            year=format_year(world.year),
        )
        data = await self._ask(prompt)
        try:
            return RegionContextPayload.model_validate(data).to_domain()
        except ValidationError as e:
            raise GatewayError(f"Invalid region payload: {e}") from e


# (name, civilization, lat range, lng range), first match wins
MOCK_REGIONS = (
    ("Fertile Crescent", "Mesopotamian and Levantine", (25, 45), (30, 50)),
    ("Egypt and the Nile", "Egyptian", (20, 35), (25, 40)),
    ("Indus Valley", "Indus Valley", (25, 40), (60, 80)),
    ("East Asia", "Chinese", (20, 45), (100, 130)),
    ("Mediterranean", "Mediterranean", (30, 50), (-10, 30)),
    ("Northern Europe", "European tribal", (40, 60), (-10, 40)),
    ("Americas", "Pre-Columbian", (-20, 20), (-80, -30)),
)


def _wrap_lng(lng: float) -> float:
    return ((lng + 180.0) % 360.0) - 180.0


class MockInterventionGateway(InterventionGateway):
    """
    Deterministic offline generator.

    Same request in, same result out. Cities within a lat/lng box of the
    target brighten, one trade hub emerges, every route gains volume.
    """

    NEAR_LAT = 20.0
    NEAR_LNG = 30.0

    async def submit(self, request: SubmissionRequest) -> InterventionResult:
        target = request.target
        text = request.description
        cities = []
        for city in request.world.cities:
            if (
                abs(city.lat - target.lat) < self.NEAR_LAT
                and abs(_wrap_lng(city.lng - target.lng)) < self.NEAR_LNG
            ):
                cities.append(City(
                    id=city.id,
                    name=city.name,
                    lat=city.lat,
                    lng=city.lng,
                    population=int(city.population * 1.5),
                    brightness=city.brightness + 0.2,
                    tech_level=city.tech_level + 1,
                    civilization=city.civilization,
                    description=city.description,
                    pros=city.pros,
                    cons=city.cons,
                    causal_note=f"Because {text}, this region experienced accelerated development and increased trade.",
                    change="brighter",
                ))
            else:
                cities.append(City(
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
                    change="unchanged",
                ))

        hub_id = f"trade-hub-{len(request.history)}"
        if request.world.find_city(hub_id) is None:
            cities.append(City(
                id=hub_id,
                name="New Trade Hub",
                lat=clamp(target.lat + 5, -90, 90),
                lng=_wrap_lng(target.lng + 5),
                population=15000,
                brightness=0.7,
                tech_level=max((c.tech_level for c in request.world.cities), default=1),
                civilization="Emerging",
                description="A new city that emerged as a result of changed trade patterns.",
                causal_note=f"Because {text}, this location became a crucial nexus for new trade routes.",
                change="new",
            ))

        routes = tuple(
            TradeRoute(
                id=r.id,
                origin=r.origin,
                destination=r.destination,
                volume=r.volume + 1,
                description=r.description,
                causal_note=f"Trade increased due to {text}",
            )
            for r in request.world.trade_routes
        )

        span = request.end_year - request.start_year
        milestones = (
            Milestone(request.start_year + span // 4, target.lat, target.lng,
                      f'The effects of "{text}" begin to spread', "Direct result of player intervention"),
            Milestone(request.start_year + span // 2, clamp(target.lat + 10, -90, 90), _wrap_lng(target.lng + 10),
                      "Neighboring regions adopt new practices", "Cultural diffusion from intervention point"),
            Milestone(request.start_year + 3 * span // 4, clamp(target.lat + 20, -90, 90), _wrap_lng(target.lng - 10),
                      "Trade networks restructure around new centers", "Economic ripple effects"),
        )

        return InterventionResult(
            cities=tuple(cities),
            trade_routes=routes,
            regions=request.world.regions,
            narrative=(
                f'The world has been transformed by the intervention: "{text}". New powers are rising, '
                "old empires are adapting, and the flow of history has been forever altered."
            ),
            narration_script=(
                "From the point of intervention, a wave of change spreads across the globe. "
                f"{text[:1].upper()}{text[1:]} sends ripples through trade networks and political alliances. "
                "By the end of this epoch, the world map has been redrawn by a single decision."
            ),
            milestones=milestones,
            most_surprising=SurprisingConsequence(
                lat=clamp(target.lat + 15, -90, 90),
                lng=_wrap_lng(target.lng + 20),
                description="An unexpected civilization emerged in this unlikely location",
                causal_chain=(
                    "Player intervention changes local dynamics",
                    "Displaced peoples migrate to new territories",
                    "They bring knowledge and practices to fertile land",
                    "A new civilization flourishes where none existed before",
                ),
            ),
        )

    async def score(self, history, final_world, goal):
        tech = max((c.tech_level for c in final_world.cities), default=1)
        score = int(clamp(tech * 7 + len(history) * 5, 0, 100))
        return ScoreReport(
            score=score,
            summary=(
                f"Your {len(history)} decisions carried the world to tech level {tech} "
                f"by {format_year(final_world.year)}."
            ),
            causal_chain=tuple(i.description for i in history),
        )

    async def render_image(self, world, goal):
        return None

    async def describe_region(self, lat, lng, world):
        region, civilization = "Unknown Region", "Local peoples"
        for name, civ, (lat_lo, lat_hi), (lng_lo, lng_hi) in MOCK_REGIONS:
            if lat_lo < lat < lat_hi and lng_lo < lng < lng_hi:
                region, civilization = name, civ
                break

        return RegionContext(
            description=(
                f"The {region} at {format_year(world.year)}. {civilization} peoples dominate this area, "
                "with established settlements and developing trade networks."
            ),
            suggestions=(
                Suggestion(
                    f"A charismatic leader unifies the scattered {region} tribes into a powerful confederation",
                    "Political unification often accelerates technological and cultural development",
                ),
                Suggestion(
                    f"{civilization} metallurgists discover a revolutionary new alloy 500 years ahead of schedule",
                    "Technological leaps can reshape military and economic balances across regions",
                ),
                Suggestion(
                    "Traders from a distant land arrive with exotic goods and revolutionary ideas",
                    "Cross-cultural contact often sparks innovation and changes power dynamics",
                ),
            ),
        )


def create_gateway(settings: Optional[Settings] = None) -> InterventionGateway:
    """Factory: mock generator unless a real provider and key are configured."""
    settings = settings or get_settings()
    provider = settings.llm.provider.lower()

    if provider == "mock":
        return MockInterventionGateway()
    if provider != "ollama" and not settings.llm.api_key:
        logger.warning("No API key for provider %s, using mock generator", provider)
        return MockInterventionGateway()
    return LLMInterventionGateway(create_llm_client(settings.llm))
