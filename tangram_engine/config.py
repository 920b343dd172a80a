from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

from tangram_engine.services.placement.validator import DIFFICULTY_PRESETS


class Settings(BaseSettings):
    """Application settings configuration."""

    # API settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Tangram Placement API"
    ENVIRONMENT: str = "development"

    # Unknown piece types raise instead of being reported as unmatched
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Validation tolerances; explicit values override the difficulty preset
    DIFFICULTY: str = "normal"
    POSITION_TOLERANCE: Optional[float] = None
    ROTATION_TOLERANCE_DEGREES: Optional[float] = None

    # Anchor hysteresis, in observation ticks
    VISION_HYSTERESIS_TICKS: int = 5
    DIRECT_HYSTERESIS_TICKS: int = 0

    # Stability debounce
    VISION_DEBOUNCE_TICKS: int = 3
    DIRECT_DEBOUNCE_TICKS: int = 1
    MOVEMENT_THRESHOLD: float = 20.0
    ROTATION_THRESHOLD_DEGREES: float = 5.0

    # Largest edge gap, in scene units, at which two pieces count as touching
    CONTACT_TOLERANCE: float = 5.0

    # CORS settings
    BACKEND_CORS_ORIGINS: list[str] = ["*"]

    class Config:
        """Pydantic configuration class."""

        case_sensitive = True
        env_file = ".env"

    @field_validator("DIFFICULTY")
    @classmethod
    def validate_difficulty(cls, v: str) -> str:
        """Require one of the known difficulty presets."""
        if v not in DIFFICULTY_PRESETS:
            raise ValueError(f"DIFFICULTY must be one of {sorted(DIFFICULTY_PRESETS)}")
        return v

    @field_validator(
        "POSITION_TOLERANCE",
        "ROTATION_TOLERANCE_DEGREES",
        "MOVEMENT_THRESHOLD",
        "ROTATION_THRESHOLD_DEGREES",
        "CONTACT_TOLERANCE",
    )
    @classmethod
    def validate_positive(cls, v: Optional[float]) -> Optional[float]:
        """Tolerances and thresholds must be positive when set."""
        if v is not None and v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator(
        "VISION_HYSTERESIS_TICKS", "DIRECT_HYSTERESIS_TICKS", "VISION_DEBOUNCE_TICKS", "DIRECT_DEBOUNCE_TICKS"
    )
    @classmethod
    def validate_ticks(cls, v: int) -> int:
        """Tick counts cannot be negative."""
        if v < 0:
            raise ValueError("must not be negative")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Create instance
settings = get_settings()
