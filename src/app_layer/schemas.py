"""
Pydantic models for API request/response.
"""

from typing import Dict, List, Optional

from pydantic import Field

from src.ai_layer.schemas import (
    CityPayload,
    GameResultPayload,
    InterventionPayload,
    PayloadModel,
    PointPayload,
    RegionContextPayload,
    WorldStatePayload,
)
from src.simulation_layer.epochs import city_color, get_epoch
from src.simulation_layer.game_store import GameSnapshot


class GameStateResponse(PayloadModel):
    current_epoch: int
    epoch_name: str
    interventions_remaining: int
    loading: bool
    score_pending: bool
    world_state: Optional[WorldStatePayload] = None
    city_colors: Dict[str, str] = Field(default_factory=dict)
    intervention_history: List[InterventionPayload]
    selected_city: Optional[CityPayload] = None
    chosen_city: Optional[CityPayload] = None
    pending_target: Optional[PointPayload] = None
    game_result: Optional[GameResultPayload] = None

    @classmethod
    def from_snapshot(cls, snapshot: GameSnapshot) -> "GameStateResponse":
        def city(c):
            return CityPayload.from_domain(c) if c is not None else None

        return cls(
            current_epoch=snapshot.current_epoch,
            epoch_name=get_epoch(snapshot.current_epoch).name,
            interventions_remaining=snapshot.interventions_remaining,
            loading=snapshot.loading,
            score_pending=snapshot.score_pending,
            world_state=(
                WorldStatePayload.from_domain(snapshot.world_state)
                if snapshot.world_state is not None else None
            ),
            city_colors=(
                {c.id: city_color(c.tech_level) for c in snapshot.world_state.cities}
                if snapshot.world_state is not None else {}
            ),
            intervention_history=[
                InterventionPayload.from_domain(i) for i in snapshot.intervention_history
            ],
            selected_city=city(snapshot.selected_city),
            chosen_city=city(snapshot.chosen_city),
            pending_target=(
                PointPayload(lat=snapshot.pending_target.lat, lng=snapshot.pending_target.lng)
                if snapshot.pending_target is not None else None
            ),
            game_result=(
                GameResultPayload.from_domain(snapshot.game_result)
                if snapshot.game_result is not None else None
            ),
        )


class SelectCityRequest(PayloadModel):
    city_id: Optional[str] = None
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lng: Optional[float] = Field(default=None, ge=-180, le=180)


class InterventionRequest(PayloadModel):
    description: str = Field(min_length=1)
    lat: Optional[float] = None
    lng: Optional[float] = None


class InterventionResponse(PayloadModel):
    resolved: bool
    narration_script: Optional[str] = None
    state: GameStateResponse


class RegionContextRequest(PayloadModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class GameResultResponse(PayloadModel):
    pending: bool
    result: Optional[GameResultPayload] = None


RegionContextResponse = RegionContextPayload
