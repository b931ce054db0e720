"""Application configuration and settings."""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    mongo_url: str = "mongodb://localhost:27017"
    db_name: str = "rideshare_database"

    # CORS
    cors_origins: str = "*"

    # Directions (OSRM)
    osrm_base_url: str = "https://router.project-osrm.org"
    directions_timeout_seconds: float = 10.0

    # Scoring weights - route compatibility is the primary signal
    weight_route: float = 0.4
    weight_time: float = 0.3
    weight_preferences: float = 0.2
    weight_price: float = 0.1

    # Matching policy
    min_match_score: float = 0.3
    notify_threshold: float = 0.6
    exact_route_radius_km: float = 0.5
    match_expiration_days: int = 30

    # Orchestration
    max_concurrent_evaluations: int = 8
    max_candidate_trips: int = 200
    preferences_upsert_attempts: int = 3

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
