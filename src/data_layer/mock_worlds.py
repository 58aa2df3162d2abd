"""
Deterministic baseline worlds, one per playable epoch.

Used for the instant initial load and as the recovery snapshot whenever the
generator fails. Data lives in data/mock_worlds.json (camelCase, same shape
the generator is prompted with).
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from config import get_settings
from src.ai_layer.schemas import WorldStatePayload
from src.simulation_layer.models import WorldState


logger = logging.getLogger(__name__)

_mock_worlds: Optional[Dict[int, WorldState]] = None


def load_mock_worlds(path: Optional[Path] = None) -> Dict[int, WorldState]:
    """
    Read and validate the mock world file.

    Raises:
        FileNotFoundError: file missing
        pydantic.ValidationError: an entry violates the world invariants
    """
    if path is None:
        path = get_settings().paths.mock_worlds_path

    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)

    worlds = {}
    for key, entry in raw.items():
        world = WorldStatePayload.model_validate(entry).to_domain()
        if world.epoch != int(key):
            raise ValueError(f"Mock world keyed {key} declares epoch {world.epoch}")
        worlds[world.epoch] = world

    logger.debug("Loaded %d mock worlds from %s", len(worlds), path)
    return worlds


def _get_table() -> Dict[int, WorldState]:
    global _mock_worlds
    if _mock_worlds is None:
        _mock_worlds = load_mock_worlds()
    return _mock_worlds


def has_mock_world(epoch: int) -> bool:
    return epoch in _get_table()


def get_mock_world(epoch: int) -> WorldState:
    """
    Baseline snapshot for an epoch.

    Snapshots are frozen dataclasses, so handing out the cached instance is
    safe: equal calls return equal (and identical) worlds.
    """
    table = _get_table()
    if epoch not in table:
        raise KeyError(f"No mock world for epoch {epoch}")
    return table[epoch]


def validate_mock_worlds(worlds: Optional[Dict[int, WorldState]] = None) -> List[str]:
    """Internal consistency report. Empty list = consistent."""
    worlds = worlds if worlds is not None else _get_table()
    problems = []

    for epoch, world in sorted(worlds.items()):
        if not world.cities:
            problems.append(f"epoch {epoch}: no cities")
        ids = [c.id for c in world.cities]
        if len(ids) != len(set(ids)):
            problems.append(f"epoch {epoch}: duplicate city ids")
        for city in world.cities:
            if not -90 <= city.lat <= 90 or not -180 <= city.lng <= 180:
                problems.append(f"epoch {epoch}: {city.id} outside the globe")
            if city.population < 0:
                problems.append(f"epoch {epoch}: {city.id} negative population")
            if not 1 <= city.tech_level <= 10:
                problems.append(f"epoch {epoch}: {city.id} tech level out of range")

    return problems


def reset_mock_worlds() -> None:
    """Reset the cached table (for testing)."""
    global _mock_worlds
    _mock_worlds = None
