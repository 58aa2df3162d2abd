"""
FastAPI dependency injection providers.
"""

from fastapi import Request

from src.simulation_layer.game_store import GameStore


def get_game_store(request: Request) -> GameStore:
    """The session store created in the app lifespan."""
    return request.app.state.game_store
