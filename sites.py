"""
Site adapter catalog.

Each supported site is a SiteDescriptor: base and search URLs plus ordered
selector groups for every field the extraction engine reads. The selector
lists are tuned against page structures observed at one point in time and
will drift; they are configuration, so an operator can replace the whole
catalog with a JSON file (SCRAPER_SITES_FILE) without touching code.
"""
import json
import logging
from pathlib import Path
from typing import List, Optional

from config import Config
from models import CatalogSelectors, EpisodeSelectors, SelectorSpec, SiteDescriptor

logger = logging.getLogger(__name__)

IMAGE_ATTRS = ["src", "data-src", "data-original", "data-lazy-src"]

# Generic selectors that work across differently-structured anime sites
GENERIC_CATALOG_ITEMS = [
    ".anime-item", ".card", ".item", ".content-item",
    ".anime", ".movie", ".series", ".post",
    '[class*="anime"]', '[class*="card"]', '[class*="item"]',
]

CATALOG_TITLE = [
    SelectorSpec(selector=".title", attrs=["title"]),
    SelectorSpec(selector=".name", attrs=["title"]),
    SelectorSpec(selector="h3", attrs=["title"]),
    SelectorSpec(selector="h2", attrs=["title"]),
    SelectorSpec(selector=".card-title", attrs=["title"]),
    SelectorSpec(selector=".anime-title", attrs=["title"]),
    SelectorSpec(selector="a[title]", attrs=["title"]),
]

LINK = [
    SelectorSpec(selector="a[href]", attrs=["href"], text=False),
]

THUMBNAIL = [
    SelectorSpec(selector="img", attrs=IMAGE_ATTRS, text=False),
    SelectorSpec(selector=".poster img", attrs=IMAGE_ATTRS, text=False),
    SelectorSpec(selector=".thumbnail img", attrs=IMAGE_ATTRS, text=False),
    SelectorSpec(selector=".cover img", attrs=IMAGE_ATTRS, text=False),
]

EPISODE_COUNT = [
    SelectorSpec(selector=".episodes"),
    SelectorSpec(selector=".ep-count"),
    SelectorSpec(selector=".episode-count"),
    SelectorSpec(selector=".total-episodes"),
    SelectorSpec(selector='[class*="episode"]'),
    SelectorSpec(selector='[class*="ep"]'),
]

GENRES = [
    SelectorSpec(selector=".genre"),
    SelectorSpec(selector=".tag"),
    SelectorSpec(selector=".category"),
    SelectorSpec(selector='[class*="genre"]'),
    SelectorSpec(selector='[class*="tag"]'),
]

EPISODE_ITEMS = [
    ".episode", ".ep", ".episode-item", ".episode-card", ".episode-list-item",
    ".video-episode", ".anime-episode", ".chapter-item",
    '[class*="episode"]:not([class*="count"]):not([class*="total"])',
    '[class*="ep-"]:not([class*="count"])',
    ".video-item", ".video-card", ".watch-item",
    ".item", ".card", ".list-item",
]

EPISODE_TITLE = [
    SelectorSpec(selector=s, attrs=["title"])
    for s in (".title", ".name", "h3", "h4", "h2", ".episode-title",
              ".video-title", "a[title]", "span[title]", ".text", ".label")
]

EPISODE_NUMBER = [
    SelectorSpec(selector=".ep-number", attrs=["data-number"]),
    SelectorSpec(selector=".number", attrs=["data-number"]),
    SelectorSpec(selector=".episode-number", attrs=["data-number"]),
]

DEFAULT_EPISODE_SELECTORS = EpisodeSelectors(
    items=EPISODE_ITEMS,
    title=EPISODE_TITLE,
    link=LINK,
    number=EPISODE_NUMBER,
    thumbnail=THUMBNAIL,
)


def catalog_selectors(preferred_items: Optional[List[str]] = None) -> CatalogSelectors:
    """Build catalog selectors, trying site-specific card selectors before the generic ones."""
    items = list(preferred_items or [])
    items += [s for s in GENERIC_CATALOG_ITEMS if s not in items]
    return CatalogSelectors(
        items=items,
        title=CATALOG_TITLE,
        link=LINK,
        thumbnail=THUMBNAIL,
        episodes=EPISODE_COUNT,
        genres=GENRES,
    )


DEFAULT_SITES = [
    SiteDescriptor(
        id="animesdigital",
        name="AnimesDigital.org",
        base_url="https://animesdigital.org",
        search_url="https://animesdigital.org/search",
        catalog=catalog_selectors([".anime-item", ".movie-item", ".post-item", ".grid-item"]),
        episodes=DEFAULT_EPISODE_SELECTORS,
    ),
    SiteDescriptor(
        id="animesonlinecc",
        name="AnimesOnlineCC.to",
        base_url="https://animesonlinecc.to",
        search_url="https://animesonlinecc.to/search",
        catalog=catalog_selectors([".anime-card", ".video-item", ".post", ".item"]),
        episodes=DEFAULT_EPISODE_SELECTORS,
    ),
    SiteDescriptor(
        id="goyabu",
        name="Goyabu.to",
        base_url="https://goyabu.to",
        search_url="https://goyabu.to/search",
        search_param="query",
        catalog=catalog_selectors([".anime", ".card", ".item", ".content-item"]),
        episodes=DEFAULT_EPISODE_SELECTORS,
    ),
]


def load_sites(path: Optional[str] = None) -> List[SiteDescriptor]:
    """
    Return the registered site descriptors in registration order.

    When ``path`` (or Config.SCRAPER_SITES_FILE) names a JSON file holding a
    list of descriptor objects, that catalog replaces the built-in one.
    """
    path = path or Config.SCRAPER_SITES_FILE
    if not path:
        return list(DEFAULT_SITES)

    raw = json.loads(Path(path).read_text(encoding="utf-8"))
    sites = [SiteDescriptor.model_validate(item) for item in raw]
    logger.info(f"Loaded {len(sites)} site descriptors from {path}")
    return sites
