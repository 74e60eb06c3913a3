"""Configuration management for the anime scraper API."""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


# Load environment variables from .env file
def _find_env_file() -> Optional[Path]:
    """Find the .env file, searching up the directory tree."""
    current = Path(__file__).parent
    for _ in range(3):
        env_path = current / ".env"
        if env_path.exists():
            return env_path
        current = current.parent
    return None


_env_file = _find_env_file()
if _env_file:
    load_dotenv(_env_file)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name, "")
    try:
        return int(value) if value else default
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name, "")
    try:
        return float(value) if value else default
    except ValueError:
        return default


class Config:
    """Application configuration from environment variables."""

    # Base URL of this service when the resolution client runs elsewhere
    SCRAPING_API_URL: str = os.getenv("SCRAPING_API_URL", "http://localhost:3001").rstrip("/")

    # Server
    PORT: int = _env_int("PORT", 3001)
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    RATE_LIMIT: str = os.getenv("RATE_LIMIT", "10/minute")
    RATE_LIMIT_ENABLED: bool = os.getenv("RATE_LIMIT_ENABLED", "true").lower() != "false"

    # Browser
    HEADLESS: bool = os.getenv("HEADLESS", "true").lower() != "false"
    NAVIGATION_TIMEOUT_MS: int = _env_int("NAVIGATION_TIMEOUT_MS", 30000)
    CATALOG_SETTLE_MS: int = _env_int("CATALOG_SETTLE_MS", 2000)
    EPISODES_SETTLE_MS: int = _env_int("EPISODES_SETTLE_MS", 3000)
    STREAM_SETTLE_MS: int = _env_int("STREAM_SETTLE_MS", 5000)

    # Dispatch and client chain
    SITE_TIMEOUT_SECONDS: float = _env_float("SITE_TIMEOUT_SECONDS", 60.0)
    DISCOVERY_TIMEOUT_SECONDS: float = _env_float("DISCOVERY_TIMEOUT_SECONDS", 8.0)
    # The scraping-service source drives three browser scrapes in a row
    SCRAPING_SOURCE_TIMEOUT_SECONDS: float = _env_float("SCRAPING_SOURCE_TIMEOUT_SECONDS", 150.0)
    RESOLUTION_CACHE_TTL_SECONDS: int = _env_int("RESOLUTION_CACHE_TTL_SECONDS", 3600)

    # Optional JSON file replacing the built-in selector catalog
    SCRAPER_SITES_FILE: str = os.getenv("SCRAPER_SITES_FILE", "")

    # External discovery APIs tried after this service
    ANIWATCH_API_URL: str = os.getenv("ANIWATCH_API_URL", "https://api-anime-rouge.vercel.app").rstrip("/")
    ANIMEINDO_API_URL: str = os.getenv("ANIMEINDO_API_URL", "https://anime-indo-rest-api.vercel.app").rstrip("/")
