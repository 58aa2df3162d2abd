"""
Data Layer - deterministic baseline worlds.

Provides:
- get_mock_world: baseline WorldState per playable epoch
- validate_mock_worlds: consistency report for the data file
"""

from src.data_layer.mock_worlds import (
    get_mock_world,
    has_mock_world,
    load_mock_worlds,
    reset_mock_worlds,
    validate_mock_worlds,
)

__all__ = [
    "get_mock_world",
    "has_mock_world",
    "load_mock_worlds",
    "reset_mock_worlds",
    "validate_mock_worlds",
]
