"""
FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from config import Settings, get_settings, setup_logging
from src.ai_layer.gateway import InterventionGateway, create_gateway
from src.app_layer.routers import game, regions
from src.simulation_layer.game_store import GameStore


def create_app(
    gateway: Optional[InterventionGateway] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup: one game session per process, baseline world loaded instantly
        store = GameStore(gateway or create_gateway(settings), settings.game)
        store.init_world(1)
        app.state.game_store = store
        yield
        # Shutdown: drop scheduled transitions
        store.reset()

    app = FastAPI(
        title="Chronicle: Alternate History API",
        description="Turn-based alternate history game with AI-generated consequences",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(game.router, prefix="/api/v1/game", tags=["game"])
    app.include_router(regions.router, prefix="/api/v1/regions", tags=["regions"])

    @app.get("/health")
    async def health_check():
        return {"status": "ok"}

    return app


setup_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("src.app_layer.main:app", host="0.0.0.0", port=8000)
