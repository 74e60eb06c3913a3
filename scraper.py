# scraper.py
"""
Multi-site anime scraper.

AnimeScraper drives the shared headless browser over the registered site
descriptors:
- catalog search on one or every site, concurrently, with per-site failure
  isolation and case-insensitive title deduplication
- episode discovery for one anime page
- streaming URL resolution for one episode page

A site that fails or times out only drops its own results; the aggregate
call still succeeds.
"""
import asyncio
import logging
from typing import List, Optional
from urllib.parse import quote

from browser import BrowserLaunchError, BrowserManager, load_page
from config import Config
from extraction import extract_catalog, extract_episodes
from models import CatalogEntry, EpisodeEntry, SiteDescriptor, StreamingData
from sites import DEFAULT_EPISODE_SELECTORS, load_sites
from streaming import resolve_stream

logger = logging.getLogger(__name__)


def build_search_url(site: SiteDescriptor, query: Optional[str]) -> str:
    """Landing page when there is no query, otherwise the site's search URL."""
    query = (query or "").strip()
    if not query:
        return site.base_url
    return f"{site.search_url}?{site.search_param}={quote(query)}"


def dedupe_by_title(entries: List[CatalogEntry]) -> List[CatalogEntry]:
    """Keep the first entry per trimmed, lowercased title."""
    seen = set()
    unique = []
    for entry in entries:
        key = entry.title.strip().lower()
        if key in seen:
            continue
        seen.add(key)
        unique.append(entry)
    return unique


class AnimeScraper:
    def __init__(self, browser: BrowserManager, sites: Optional[List[SiteDescriptor]] = None,
                 site_timeout: Optional[float] = None):
        self.browser = browser
        self.sites = list(sites) if sites is not None else load_sites()
        self.site_timeout = Config.SITE_TIMEOUT_SECONDS if site_timeout is None else site_timeout

    def get_site(self, site_id: Optional[str]) -> Optional[SiteDescriptor]:
        for site in self.sites:
            if site.id == site_id:
                return site
        return None

    def select_sites(self, site_id: Optional[str]) -> List[SiteDescriptor]:
        site = self.get_site(site_id) if site_id else None
        if site_id and site is None:
            logger.warning(f"Unknown site '{site_id}', searching all sites")
        return [site] if site else list(self.sites)

    async def ensure_browser(self) -> None:
        """Start the browser, retrying once after a failed launch."""
        try:
            await self.browser.start()
        except BrowserLaunchError as e:
            logger.warning(f"Browser launch failed, retrying once: {e}")
            await self.browser.close()
            await self.browser.start()

    async def search_site(self, site: SiteDescriptor, query: Optional[str] = None) -> List[CatalogEntry]:
        url = build_search_url(site, query)
        logger.info(f"Scraping {site.name}: {url}")
        async with self.browser.acquire_page() as page:
            html, final_url = await load_page(page, url, Config.CATALOG_SETTLE_MS)
        entries = extract_catalog(html, final_url or url, site)
        logger.info(f"Found {len(entries)} animes on {site.name}")
        return entries

    async def search_all_sites(self, query: Optional[str] = None, site_id: Optional[str] = None) -> List[CatalogEntry]:
        """
        Search the selected site (or every site) concurrently.

        Each site is bounded by the per-site timeout; failures are logged and
        contribute nothing. Survivors are concatenated in registration order
        and deduplicated by title. Raises BrowserLaunchError only when the
        browser cannot be started at all.
        """
        await self.ensure_browser()
        sites = self.select_sites(site_id)

        tasks = [asyncio.wait_for(self.search_site(site, query), timeout=self.site_timeout) for site in sites]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        results: List[CatalogEntry] = []
        for site, outcome in zip(sites, outcomes):
            if isinstance(outcome, asyncio.TimeoutError):
                logger.error(f"Scraping {site.name} timed out after {self.site_timeout}s")
            elif isinstance(outcome, Exception):
                logger.error(f"Error scraping {site.name}: {outcome}")
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results.extend(outcome)

        unique = dedupe_by_title(results)
        logger.info(f"Total unique animes found: {len(unique)}")
        return unique

    async def get_episodes(self, site_id: str, anime_id: str, anime_url: str) -> List[EpisodeEntry]:
        site = self.get_site(site_id)
        selectors = site.episodes if site else DEFAULT_EPISODE_SELECTORS

        logger.info(f"Scraping episodes from: {anime_url}")
        try:
            async with self.browser.acquire_page() as page:
                html, final_url = await load_page(page, anime_url, Config.EPISODES_SETTLE_MS)
        except BrowserLaunchError:
            raise
        except Exception as e:
            logger.error(f"Error scraping episodes from {anime_url}: {e}")
            return []

        episodes = extract_episodes(html, final_url or anime_url, anime_id, site_id, selectors)
        logger.info(f"Found {len(episodes)} episodes for {anime_id} on {site_id}")
        return episodes

    async def get_streaming_data(self, site_id: str, episode_id: str, episode_url: str) -> StreamingData:
        logger.debug(f"Resolving stream for {site_id}/{episode_id}")
        return await resolve_stream(self.browser, episode_url)

    async def close(self) -> None:
        await self.browser.close()
