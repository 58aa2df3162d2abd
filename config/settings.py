"""
Centralized configuration using pydantic-settings.
Loads from .env file and provides typed access to all constants.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


DEFAULT_GOAL = "Achieve interstellar travel capability by 4000 AD"


class GameSettings(BaseSettings):
    """Turn structure and optimistic overlay parameters."""

    advance_delay: float = Field(
        default=2.5, description="Seconds to show an outcome before the next epoch begins"
    )
    fallback_delay: float = Field(
        default=1.0, description="Seconds before advancing after a failed generation call"
    )
    proximity_degrees: float = Field(
        default=25.0, description="Angular radius of the optimistic overlay"
    )
    brightness_boost: float = Field(default=0.2)
    tech_boost: int = Field(default=1)
    goal: str = Field(default=DEFAULT_GOAL)
    default_score: int = Field(default=50)
    default_summary: str = Field(
        default="Your decisions shaped history in unexpected ways."
    )

    model_config = {"env_prefix": "GAME_", "env_file": ".env", "extra": "ignore"}


class AnimationSettings(BaseSettings):
    """Ripple and year counter timing."""

    ripple_duration: float = Field(default=5.0)
    year_time_constant: float = Field(
        default=4.0, description="Seconds for the pending year counter to cover ~63% of the span"
    )
    year_max_fraction: float = Field(
        default=0.95, description="Ceiling of the pending phase, must stay below 1"
    )
    year_finish_duration: float = Field(default=1.0)
    frame_rate: int = Field(default=60)

    model_config = {"env_prefix": "ANIM_", "env_file": ".env", "extra": "ignore"}


class PathSettings(BaseSettings):
    """File path configuration."""

    project_root: Path = Field(
        default_factory=lambda: Path(__file__).resolve().parent.parent
    )
    mock_worlds_file: Optional[Path] = Field(
        default=None,
        description="Mock world JSON (overrides data/mock_worlds.json when set)"
    )

    @property
    def data_dir(self) -> Path:
        return self.project_root / "data"

    @property
    def mock_worlds_path(self) -> Path:
        if self.mock_worlds_file is not None:
            return self.mock_worlds_file
        return self.data_dir / "mock_worlds.json"

    model_config = {"env_prefix": "PATH_", "env_file": ".env", "extra": "ignore"}


class LLMSettings(BaseSettings):
    """LLM API configuration. Default: offline mock generator."""

    provider: str = Field(
        default="mock", description="LLM provider: mock | gemini | openai | anthropic | groq | ollama"
    )
    model_name: str = Field(
        default="gemini-2.5-pro",
        description="Model name. Gemini: gemini-2.5-pro. OpenAI: gpt-4o. Ollama: qwen2.5:7b"
    )
    image_model_name: str = Field(
        default="gemini-2.0-flash-preview-image-generation",
        description="Image model. OpenAI: gpt-image-1"
    )
    api_key: str = Field(default="", description="API key or Ollama base URL")
    temperature: float = Field(default=0.9)
    max_tokens: int = Field(default=8192)
    timeout: float = Field(default=120.0)
    max_retries: int = Field(default=3)
    rate_limit_delay: float = Field(default=0.0)

    model_config = {"env_prefix": "LLM_", "env_file": ".env", "extra": "ignore"}


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field(default="INFO")
    file: Optional[Path] = Field(default=None, description="Optional UTF-8 log file")

    model_config = {"env_prefix": "LOG_", "env_file": ".env", "extra": "ignore"}


class Settings(BaseSettings):
    """Root settings aggregator."""

    game: GameSettings = Field(default_factory=GameSettings)
    animation: AnimationSettings = Field(default_factory=AnimationSettings)
    paths: PathSettings = Field(default_factory=PathSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached instance (for testing)."""
    global _settings
    _settings = None
