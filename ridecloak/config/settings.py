import logging
import os
from functools import lru_cache
from typing import Optional
from pydantic import BaseModel
import redis

def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}

class Settings(BaseModel):
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    node_id: str = os.getenv("NODE_ID", "node-local")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    # storage
    order_backend: str = os.getenv("ORDER_BACKEND", "memory")  # "memory" or "redis"
    drivers_file: str = os.getenv("DRIVERS_FILE", os.path.join("data", "drivers.json"))
    order_ttl_seconds: float = float(os.getenv("ORDER_TTL_SECONDS", "0"))

    # synthetic directory
    directory_size: int = int(os.getenv("DIRECTORY_SIZE", "20"))
    center_lat: float = float(os.getenv("CENTER_LAT", "40.0"))
    center_lon: float = float(os.getenv("CENTER_LON", "116.33"))
    spread_deg: float = float(os.getenv("SPREAD_DEG", "0.01"))

    # cells and density
    driver_cell_resolution: int = int(os.getenv("DRIVER_CELL_RESOLUTION", "9"))
    density_radius: int = int(os.getenv("DENSITY_RADIUS", "3"))

    # buckets
    signature_count: int = int(os.getenv("SIGNATURE_COUNT", "3"))
    signature_length: int = int(os.getenv("SIGNATURE_LENGTH", "16"))
    token_length: int = int(os.getenv("TOKEN_LENGTH", "32"))
    shared_secret: str = os.getenv("SHARED_SECRET", "demo_secret")
    freshness_window_seconds: float = float(os.getenv("FRESHNESS_WINDOW_SECONDS", "0"))

    # candidate exposure
    candidate_coordinates: str = os.getenv("CANDIDATE_COORDINATES", "cell")  # exact | cell | none
    match_available_only: bool = _flag("MATCH_AVAILABLE_ONLY")

@lru_cache
def get_settings() -> Settings:
    return Settings()

@lru_cache
def get_redis():
    return redis.from_url(get_settings().redis_url, decode_responses=True)

def configure_logging(settings: Optional[Settings] = None):
    if settings is None:
        settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
