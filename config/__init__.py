from config.settings import (
    AnimationSettings,
    GameSettings,
    LLMSettings,
    LogSettings,
    PathSettings,
    Settings,
    get_settings,
    reset_settings,
)
from config.log_config import setup_logging

__all__ = [
    "AnimationSettings",
    "GameSettings",
    "LLMSettings",
    "LogSettings",
    "PathSettings",
    "Settings",
    "get_settings",
    "reset_settings",
    "setup_logging",
]
