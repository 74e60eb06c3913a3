# resolver.py
"""
Client-side episode video resolution.

Given an anime title and an episode number, StreamResolver walks an ordered
chain of discovery sources (this service's own scraping API, then the
aniwatch and anime-indo APIs) and returns the best playable URL. When every
source fails it falls back to a placeholder video picked deterministically
from the title and episode, so the same request always gets the same video.
Results, placeholders included, are cached per (title, episode) with a TTL.
"""
import asyncio
import logging
import re
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from httpx import AsyncClient, AsyncHTTPTransport, HTTPError, HTTPStatusError, RequestError

from config import Config
from fallback import first_success
from models import CacheEntry, CatalogEntry, EpisodeEntry, StreamingData, StreamSource

logger = logging.getLogger(__name__)

CLIENT_HEADERS = {
    "User-Agent": "AnimePulse/1.0",
    "Accept": "application/json",
}

PLACEHOLDER_VIDEOS = [
    "https://www.learningcontainer.com/wp-content/uploads/2020/05/sample-mp4-file.mp4",
    "https://sample-videos.com/zip/10/mp4/720/mp4-30s-720x480.mp4",
    "https://samplelib.com/lib/preview/mp4/sample-30s.mp4",
    "https://commondatastorage.googleapis.com/gtv-videos-bucket/sample/BigBuckBunny.mp4",
    "https://commondatastorage.googleapis.com/gtv-videos-bucket/sample/ElephantsDream.mp4",
    "https://test-videos.co.uk/vids/bigbuckbunny/mp4/h264/360/Big_Buck_Bunny_360_10s_1MB.mp4",
]

LEADING_DIGITS = re.compile(r"^\s*(\d+)")
FIRST_INTEGER = re.compile(r"\d+")


class ScrapingApiError(Exception):
    """The scraping service answered with a failure."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def stable_hash(value: str) -> int:
    """
    Non-negative 32-bit string hash (h = h * 31 + unit over UTF-16 code
    units). Unlike hash(), it does not change between processes.
    """
    h = 0
    encoded = value.encode("utf-16-le")
    for i in range(0, len(encoded), 2):
        unit = encoded[i] | (encoded[i + 1] << 8)
        h = (h * 31 + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def placeholder_video(title: str, episode: int, pool: Optional[List[str]] = None) -> str:
    pool = pool or PLACEHOLDER_VIDEOS
    return pool[stable_hash(f"{title}-ep{episode}") % len(pool)]


def quality_rank(quality: str) -> int:
    match = LEADING_DIGITS.match(quality or "")
    return int(match.group(1)) if match else 0


def best_source(sources: List[StreamSource]) -> StreamSource:
    """Highest numeric quality; the earlier source wins a tie."""
    best = sources[0]
    for source in sources[1:]:
        if quality_rank(source.quality) > quality_rank(best.quality):
            best = source
    return best


def _normalize_title(title: str) -> str:
    return " ".join((title or "").lower().split())


def _to_source(raw: Dict[str, Any]) -> Optional[StreamSource]:
    url = (raw or {}).get("url")
    if not url:
        return None
    return StreamSource(
        url=url,
        quality=str(raw.get("quality") or "default"),
        is_m3u8=bool(raw.get("isM3U8")) or ".m3u8" in url,
    )


class ResolutionCache:
    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.time):
        self.ttl_seconds = Config.RESOLUTION_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self.clock = clock
        self._entries: Dict[Tuple[str, int], CacheEntry] = {}

    @staticmethod
    def key(title: str, episode: int) -> Tuple[str, int]:
        return _normalize_title(title), int(episode)

    def get(self, title: str, episode: int) -> Optional[str]:
        key = self.key(title, episode)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.clock() - entry.fetched_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return entry.value

    def set(self, title: str, episode: int, value: str) -> None:
        self._entries[self.key(title, episode)] = CacheEntry(value=value, fetched_at=self.clock())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def _build_client(base_url: str = "", timeout: float = 10.0) -> AsyncClient:
    return AsyncClient(
        base_url=base_url,
        transport=AsyncHTTPTransport(retries=2),
        headers=CLIENT_HEADERS,
        timeout=timeout,
        follow_redirects=True,
    )


class ScrapingApiClient:
    """HTTP client for this service's own /api endpoints."""

    def __init__(self, base_url: Optional[str] = None, client: Optional[AsyncClient] = None):
        self.base_url = (base_url or Config.SCRAPING_API_URL).rstrip("/")
        self.client = client or _build_client(self.base_url, timeout=Config.SCRAPING_SOURCE_TIMEOUT_SECONDS)

    async def _request(self, path: str, params: Optional[Dict[str, str]] = None) -> Any:
        try:
            response = await self.client.get(f"{self.base_url}{path}", params=params)
            response.raise_for_status()
        except HTTPStatusError as e:
            status_code = e.response.status_code
            logger.error(f"Scraping API request {path} failed with HTTP {status_code}")
            raise ScrapingApiError(f"HTTP {status_code}: {e.response.reason_phrase}", status_code) from e
        except RequestError as e:
            logger.error(f"Network error calling scraping API {path}: {e}")
            raise ScrapingApiError(f"Network error: {e}") from e

        payload = response.json()
        if not payload.get("success"):
            raise ScrapingApiError(payload.get("message") or "API request failed", response.status_code)
        return payload.get("data")

    async def search_animes(self, query: Optional[str] = None, site: Optional[str] = None) -> List[CatalogEntry]:
        params = {}
        if query:
            params["q"] = query
        if site:
            params["site"] = site
        data = await self._request("/api/animes", params)
        return [CatalogEntry.model_validate(item) for item in data or []]

    async def get_anime_episodes(self, site_id: str, anime_id: str, anime_url: str) -> List[EpisodeEntry]:
        data = await self._request(f"/api/animes/{site_id}/{anime_id}/episodes", {"animeUrl": anime_url})
        return [EpisodeEntry.model_validate(item) for item in data or []]

    async def get_episode_stream(self, site_id: str, episode_id: str, episode_url: str) -> StreamingData:
        data = await self._request(f"/api/episodes/{site_id}/{episode_id}/stream", {"episodeUrl": episode_url})
        return StreamingData.model_validate(data)

    async def health_check(self) -> bool:
        try:
            response = await self.client.get(f"{self.base_url}/")
            return response.is_success
        except HTTPError as e:
            logger.debug(f"Scraping API health check failed: {e}")
            return False

    async def aclose(self) -> None:
        await self.client.aclose()


# ---------------------------------------------------------------------------
# Discovery sources
# ---------------------------------------------------------------------------

class DiscoverySource:
    """One link of the discovery chain, bounded by its own timeout."""

    name = "source"

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = Config.DISCOVERY_TIMEOUT_SECONDS if timeout is None else timeout

    async def fetch(self, title: str, episode: int) -> List[StreamSource]:
        raise NotImplementedError

    async def __call__(self, title: str, episode: int) -> List[StreamSource]:
        logger.debug(f"Trying {self.name} for {title} episode {episode}")
        return await asyncio.wait_for(self.fetch(title, episode), timeout=self.timeout)


class ScrapingServiceSource(DiscoverySource):
    name = "scraping-service"

    def __init__(self, api: ScrapingApiClient, timeout: Optional[float] = None):
        super().__init__(Config.SCRAPING_SOURCE_TIMEOUT_SECONDS if timeout is None else timeout)
        self.api = api

    async def fetch(self, title: str, episode: int) -> List[StreamSource]:
        animes = await self.api.search_animes(title)
        if not animes:
            return []
        anime = animes[0]

        episodes = await self.api.get_anime_episodes(anime.site_id, anime.id, anime.url)
        match = next((ep for ep in episodes if ep.number == episode), None)
        if match is None:
            logger.info(f"Episode {episode} not listed for {anime.title} on {anime.site_id}")
            return []

        stream = await self.api.get_episode_stream(anime.site_id, match.id, match.url)
        # An external page is not something a player can load
        if stream.external or not stream.streaming_url:
            return []
        return [StreamSource(url=stream.streaming_url, is_m3u8=".m3u8" in stream.streaming_url)]


class AniwatchSource(DiscoverySource):
    name = "aniwatch"

    def __init__(self, client: AsyncClient, base_url: Optional[str] = None, timeout: Optional[float] = None):
        super().__init__(timeout)
        self.client = client
        self.base_url = (base_url or Config.ANIWATCH_API_URL).rstrip("/")

    async def _get(self, path: str, params: Dict[str, str]) -> Any:
        response = await self.client.get(f"{self.base_url}{path}", params=params)
        response.raise_for_status()
        return response.json()

    async def fetch(self, title: str, episode: int) -> List[StreamSource]:
        query = re.sub(r"[^\w\s]", "", title).strip()
        data = await self._get("/aniwatch/search", {"q": query})
        results = data.get("animes") or data.get("results") or []
        if not results:
            return []
        anime_id = results[0]["id"]

        servers = await self._get("/aniwatch/servers", {"id": anime_id, "ep": str(episode)})
        ordered = (servers.get("sub") or []) + (servers.get("dub") or []) + (servers.get("raw") or [])

        for server in ordered:
            server_name = server.get("serverName")
            if not server_name:
                continue
            try:
                payload = await self._get("/aniwatch/episode-srcs", {
                    "id": anime_id,
                    "ep": str(episode),
                    "server": server_name,
                    "category": "sub",
                })
            except HTTPError as e:
                logger.warning(f"Aniwatch server {server_name} failed: {e}")
                continue
            sources = [s for s in (_to_source(raw) for raw in payload.get("sources") or []) if s]
            if sources:
                logger.info(f"Got {len(sources)} sources from aniwatch server {server_name}")
                return sources
        return []


class AnimeIndoSource(DiscoverySource):
    name = "anime-indo"

    def __init__(self, client: AsyncClient, base_url: Optional[str] = None, timeout: Optional[float] = None):
        super().__init__(timeout)
        self.client = client
        self.base_url = (base_url or Config.ANIMEINDO_API_URL).rstrip("/")

    async def _get(self, path: str) -> Any:
        response = await self.client.get(f"{self.base_url}{path}")
        response.raise_for_status()
        return response.json()

    @staticmethod
    def matches(anime_title: str, query: str) -> bool:
        anime_title = (anime_title or "").lower()
        query = query.lower()
        return query in anime_title or any(word in anime_title for word in query.split())

    async def fetch(self, title: str, episode: int) -> List[StreamSource]:
        recent = (await self._get("/luckyanime/recent")).get("data") or []
        candidates = [anime for anime in recent if self.matches(anime.get("title"), title)]
        if not candidates:
            return []
        anime_id = candidates[0].get("id") or candidates[0].get("animeId")
        if not anime_id:
            return []

        details = (await self._get(f"/luckyanime/details{anime_id}")).get("data") or []
        if not details:
            return []
        for item in details[0].get("episode") or []:
            match = FIRST_INTEGER.search(item.get("epsTitle") or "")
            if match and int(match.group(0)) == episode and item.get("episodeId"):
                return [StreamSource(
                    url=f"{self.base_url}/stream{item['episodeId']}",
                    quality="720p",
                    is_m3u8=True,
                )]
        logger.info(f"Episode {episode} not found on anime-indo for {title}")
        return []


class StreamResolver:
    def __init__(
        self,
        api: Optional[ScrapingApiClient] = None,
        client: Optional[AsyncClient] = None,
        cache: Optional[ResolutionCache] = None,
        sources: Optional[List[DiscoverySource]] = None,
        placeholders: Optional[List[str]] = None,
    ):
        self.client = client or _build_client(timeout=Config.DISCOVERY_TIMEOUT_SECONDS)
        self.api = api or ScrapingApiClient()
        self.cache = cache if cache is not None else ResolutionCache()
        self.placeholders = placeholders or PLACEHOLDER_VIDEOS
        if sources is None:
            sources = [
                ScrapingServiceSource(self.api),
                AniwatchSource(self.client),
                AnimeIndoSource(self.client),
            ]
        self.sources = sources

    async def get_episode_streaming_data(self, title: str, episode: int) -> List[StreamSource]:
        """Sources from the first discovery source that returns any; [] when all fail."""
        sources = await first_success(self.sources, title, episode)
        return sources or []

    async def get_episode_video_url(self, title: str, episode: int) -> str:
        cached = self.cache.get(title, episode)
        if cached:
            logger.debug(f"Cache hit for {title} episode {episode}")
            return cached

        sources = await self.get_episode_streaming_data(title, episode)
        if sources:
            url = best_source(sources).url
            logger.info(f"Resolved {title} episode {episode}: {url}")
        else:
            url = placeholder_video(title, episode, self.placeholders)
            logger.warning(f"No source for {title} episode {episode}, using placeholder {url}")

        self.cache.set(title, episode, url)
        return url

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("Resolution cache cleared")

    async def aclose(self) -> None:
        await self.client.aclose()
        if self.api.client is not self.client:
            await self.api.aclose()
