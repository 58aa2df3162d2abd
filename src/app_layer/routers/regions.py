"""
Region context API: what is here, and what could the player change.
"""

from fastapi import APIRouter, Depends

from src.ai_layer.schemas import RegionContextPayload, SuggestionPayload
from src.app_layer.dependencies import get_game_store
from src.app_layer.schemas import RegionContextRequest, RegionContextResponse
from src.simulation_layer.game_store import GameStore

router = APIRouter()


@router.post("/context", response_model=RegionContextResponse)
async def region_context(
    request: RegionContextRequest, store: GameStore = Depends(get_game_store)
):
    context = await store.describe_region(request.lat, request.lng)
    return RegionContextPayload(
        description=context.description,
        suggestions=[SuggestionPayload(text=s.text, reasoning=s.reasoning) for s in context.suggestions],
    )
