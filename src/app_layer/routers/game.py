"""
Game session API endpoints.
"""

from fastapi import APIRouter, Depends, HTTPException

from src.ai_layer.schemas import GameResultPayload
from src.app_layer.dependencies import get_game_store
from src.app_layer.schemas import (
    GameResultResponse,
    GameStateResponse,
    InterventionRequest,
    InterventionResponse,
    SelectCityRequest,
)
from src.simulation_layer.game_store import GameStore

router = APIRouter()


@router.get("/state", response_model=GameStateResponse)
async def get_state(store: GameStore = Depends(get_game_store)):
    """Current epoch, world snapshot and history."""
    return GameStateResponse.from_snapshot(store.snapshot())


@router.post("/select", response_model=GameStateResponse)
async def select_city(request: SelectCityRequest, store: GameStore = Depends(get_game_store)):
    """
    Select a city by id, or the city nearest a clicked (lat, lng).
    With neither, the selection is cleared.
    """
    if request.city_id is not None:
        if store.select_city_by_id(request.city_id) is None:
            raise HTTPException(status_code=404, detail=f"Unknown city: {request.city_id}")
    elif request.lat is not None and request.lng is not None:
        if store.select_nearest_city(request.lat, request.lng) is None:
            raise HTTPException(status_code=409, detail="No world to select from")
    else:
        store.select_city(None)
    return GameStateResponse.from_snapshot(store.snapshot())


@router.post("/interventions", response_model=InterventionResponse)
async def submit_intervention(
    request: InterventionRequest, store: GameStore = Depends(get_game_store)
):
    """
    Submit the epoch's intervention and wait for it to resolve.

    409 when no intervention can be made right now. A failed generation still
    answers 200 with resolved=false: the game falls back and moves on.
    """
    if not store.can_submit(request.lat, request.lng, request.description):
        raise HTTPException(status_code=409, detail="No intervention can be submitted now")

    result = await store.submit_intervention(request.description, request.lat, request.lng)
    return InterventionResponse(
        resolved=result is not None,
        narration_script=result.narration_script if result is not None else None,
        state=GameStateResponse.from_snapshot(store.snapshot()),
    )


@router.post("/reset", response_model=GameStateResponse)
async def reset_game(store: GameStore = Depends(get_game_store)):
    store.reset()
    return GameStateResponse.from_snapshot(store.snapshot())


@router.get("/result", response_model=GameResultResponse)
async def get_result(store: GameStore = Depends(get_game_store)):
    """Final score once the terminal epoch has been scored."""
    snapshot = store.snapshot()
    if snapshot.game_result is None:
        return GameResultResponse(pending=snapshot.score_pending)
    return GameResultResponse(
        pending=False,
        result=GameResultPayload.from_domain(snapshot.game_result),
    )
