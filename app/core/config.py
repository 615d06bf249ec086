from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    # Load env from .env file
    model_config = {"env_file": ".env", "extra": "ignore"}

    # Server
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"
    LOG_ENABLED: bool = True

    # Bypass / compression criteria
    BYPASS_THRESHOLD: int = 10240
    MIN_COMPRESS_LENGTH: int = 2048
    MIN_TRANSPARENT_COMPRESS_LENGTH: int = 100 * 1024
    MAX_ORIGINAL_SIZE: int = 5 * 1024 * 1024

    # Output geometry and quality
    MAX_WIDTH: int = 400
    MAX_JPEG_HEIGHT: int = 32767
    MAX_AVIF_HEIGHT: int = 16383
    DEFAULT_QUALITY: int = 40
    GRAYSCALE_QUALITY_MIN: int = 10
    GRAYSCALE_QUALITY_MAX: int = 40
    CODEC_WORKERS: int = 4

    # Upstream fetch
    FETCH_HEADERS_TO_PICK: List[str] = [
        "cookie",
        "dnt",
        "referer",
        "user-agent",
        "accept",
        "accept-language",
    ]
    FETCH_CONCURRENCY: int = 10
    FETCH_TIMEOUT: float = 8.0  # seconds, per attempt, connect + transfer
    FETCH_MAX_ATTEMPTS: int = 2
    FETCH_THROTTLE_DELAY: float = 0.4

# Instantiate settings
settings = Settings()
