"""
Centralized logging configuration for the anime scraper API.

Call setup_logging() once at application startup (from the FastAPI
lifespan handler or from ``python app.py``). Every module then gets its
own logger via:

    import logging
    logger = logging.getLogger(__name__)

Level mapping:
  DEBUG   - selector hits, cache hits, skipped records
  INFO    - per-site result counts, resolved streams
  WARNING - fallbacks, failed sites and discovery APIs
  ERROR   - unexpected failures
"""

import logging
import sys


def setup_logging(level: str = "INFO") -> None:
    """Configure root logger and quiet noisy third-party loggers."""
    fmt = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=fmt,
        stream=sys.stdout,
        force=True,
    )

    for name in ("httpx", "httpcore", "uvicorn.access", "asyncio"):
        logging.getLogger(name).setLevel(logging.WARNING)
