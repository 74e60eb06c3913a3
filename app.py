#  app.py
import logging
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Path, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException as StarletteHTTPException

from browser import BrowserManager
from config import Config
from logging_config import setup_logging
from models import CatalogResponse, EpisodesResponse, ErrorResponse, StreamResponse
from scraper import AnimeScraper

# Configure logging
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing or invalid parameter"},
    500: {"model": ErrorResponse, "description": "Internal server error"},
}

# Per-client-IP limit applied to every route by SlowAPIMiddleware
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[Config.RATE_LIMIT],
    enabled=Config.RATE_LIMIT_ENABLED,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Own the shared browser for the lifetime of the application."""
    setup_logging(Config.LOG_LEVEL)
    app.state.scraper = AnimeScraper(BrowserManager())
    logger.info(f"Anime Scraper API starting with sites: {', '.join(s.id for s in app.state.scraper.sites)}")
    yield
    await app.state.scraper.close()
    logger.info("Anime Scraper API shut down cleanly")


# Initialize FastAPI app
app = FastAPI(
    title="Anime Scraper API",
    description="Scrapes anime catalogs, episode lists and streaming URLs from several anime sites with a headless browser.",
    version=API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)


# Dependency to provide the scraper
def get_scraper(request: Request) -> AnimeScraper:
    return request.app.state.scraper


def _error_body(status_code: int, message: str) -> dict:
    try:
        error = HTTPStatus(status_code).phrase
    except ValueError:
        error = "Error"
    return ErrorResponse(error=error, message=message).model_dump()


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == 404 and message == "Not Found":
        message = "Endpoint not found"
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.status_code, message))


# SlowAPIMiddleware calls this handler synchronously
@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(f"Rate limit exceeded for {get_remote_address(request)} on {request.url.path}: {exc.detail}")
    return JSONResponse(status_code=429, content=_error_body(429, "Rate limit exceeded. Try again later."))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content=_error_body(500, "Something went wrong"))


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    return {
        "success": True,
        "message": "Anime Scraper API is running",
        "version": API_VERSION,
        "endpoints": {
            "/api/animes": "GET - Search animes (query parameters: q, site)",
            "/api/animes/{siteId}/{animeId}/episodes": "GET - Get anime episodes (query parameter: animeUrl)",
            "/api/episodes/{siteId}/{episodeId}/stream": "GET - Get episode streaming URL (query parameter: episodeUrl)",
        },
        "documentation": "/docs",
    }


router = APIRouter()


@router.get(
    "/animes",
    response_model=CatalogResponse,
    responses={500: ERROR_RESPONSES[500]},
    summary="Search animes",
    description="Search every registered site, or only `site`, for `q`. Without `q` the sites' landing pages are listed. Example: `?q=naruto&site=goyabu`",
)
async def search_animes(
    q: Optional[str] = Query(None, description="Search text"),
    site: Optional[str] = Query(None, description="Restrict the search to one site id"),
    scraper: AnimeScraper = Depends(get_scraper),
):
    query = q.strip() if q and q.strip() else None
    logger.info(f"Searching animes{f' for: {query!r}' if query else ''}")
    try:
        results = await scraper.search_all_sites(query, site)
    except Exception as e:
        logger.exception(f"Error searching animes: {e}")
        raise HTTPException(status_code=500, detail="Failed to search animes")
    return CatalogResponse(data=results, count=len(results), query=query)


@router.get(
    "/animes/{site_id}/{anime_id}/episodes",
    response_model=EpisodesResponse,
    responses=ERROR_RESPONSES,
    summary="Get anime episodes",
    description="List the episodes found on `animeUrl`, sorted by number.",
)
async def get_anime_episodes(
    site_id: str = Path(..., description="Site id, e.g. 'goyabu'"),
    anime_id: str = Path(..., description="Catalog id of the anime"),
    animeUrl: Optional[str] = Query(None, description="Absolute URL of the anime page"),
    scraper: AnimeScraper = Depends(get_scraper),
):
    if not animeUrl or not animeUrl.strip():
        raise HTTPException(status_code=400, detail="animeUrl query parameter is required")

    logger.info(f"Getting episodes for {anime_id} from {site_id}")
    try:
        episodes = await scraper.get_episodes(site_id, anime_id, animeUrl.strip())
    except Exception as e:
        logger.exception(f"Error getting episodes: {e}")
        raise HTTPException(status_code=500, detail="Failed to get episodes")
    return EpisodesResponse(data=episodes, count=len(episodes), anime_id=anime_id, site_id=site_id)


@router.get(
    "/episodes/{site_id}/{episode_id}/stream",
    response_model=StreamResponse,
    responses=ERROR_RESPONSES,
    summary="Get episode streaming URL",
    description="Resolve a playable or embeddable URL from `episodeUrl`. Falls back to the page itself with `external: true`.",
)
async def get_episode_stream(
    site_id: str = Path(..., description="Site id, e.g. 'goyabu'"),
    episode_id: str = Path(..., description="Episode id"),
    episodeUrl: Optional[str] = Query(None, description="Absolute URL of the episode watch page"),
    scraper: AnimeScraper = Depends(get_scraper),
):
    if not episodeUrl or not episodeUrl.strip():
        raise HTTPException(status_code=400, detail="episodeUrl query parameter is required")

    logger.info(f"Getting streaming URL for {episode_id} from {site_id}")
    try:
        streaming_data = await scraper.get_streaming_data(site_id, episode_id, episodeUrl.strip())
    except Exception as e:
        logger.exception(f"Error getting streaming URL: {e}")
        raise HTTPException(status_code=500, detail="Failed to get streaming URL")
    return StreamResponse(data=streaming_data, episode_id=episode_id, site_id=site_id)


app.include_router(router, tags=["Scraping"])
app.include_router(router, prefix="/api", tags=["Scraping"], include_in_schema=False)


if __name__ == "__main__":
    setup_logging(Config.LOG_LEVEL)
    uvicorn.run("app:app", host="0.0.0.0", port=Config.PORT)
