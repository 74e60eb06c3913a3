"""
Heuristic extraction of catalog cards and episode lists from arbitrary HTML.

Nothing here is site-specific: every field is located through an ordered list
of SelectorSpec candidates where the first non-empty value wins. The
functions work on page HTML (as captured from the browser) so they can be
exercised without one.
"""
import logging
import re
from typing import Callable, List, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from models import CatalogEntry, EpisodeEntry, EpisodeSelectors, SelectorSpec, SiteDescriptor

logger = logging.getLogger(__name__)

MAX_CATALOG_ITEMS = 20
MAX_GENRES = 5
MIN_EPISODE_COUNT, MAX_EPISODE_COUNT = 1, 500
MIN_EPISODE_NUMBER, MAX_EPISODE_NUMBER = 1, 9999
# Lists spread wider than this many numbers per episode get outliers dropped
OUTLIER_SPREAD_FACTOR = 5
MAX_MEDIAN_DISTANCE = 100

# Keyword forms for "episode(s)" in the languages the supported sites use
EPISODE_WORD = r"\b(?:epis[oó]dios?|episodes?|eps?\.?)(?![a-zà-ÿ])"
EPISODE_COUNT_PATTERNS = [
    # "Ep 1-12", "Episodes 1 - 24"
    re.compile(EPISODE_WORD + r"\s*\d+\s*[-–—]\s*(\d{1,3})(?!\d)", re.I),
    # "5/12 eps"
    re.compile(r"(\d{1,3})\s*/\s*(\d{1,3})\s*" + EPISODE_WORD, re.I),
    # "Episodes: 12"
    re.compile(EPISODE_WORD + r"\s*[:.\-]?\s*(\d{1,3})(?!\d)", re.I),
    # "12 episodes"
    re.compile(r"(?<!\d)(\d{1,3})\s*" + EPISODE_WORD, re.I),
    # "Total: 12"
    re.compile(r"\btotal\s*[:.\-]?\s*(\d{1,3})(?!\d)", re.I),
]

EPISODE_LABEL = r"\b(?:ep(?:is[oó]dio|isode)?s?|cap(?:[ií]tulo)?|chapter)\.?\s*[:\-#.]?\s*"
EPISODE_NUMBER_PATTERNS = [
    # "Episódio 7", "EP. 12", "Capítulo 3"
    re.compile(EPISODE_LABEL + r"(\d{1,4})(?!\d)", re.I),
    # "7º Episódio", "12 ep"
    re.compile(r"(?<!\d)(\d{1,4})\s*[ºª°]?\s*(?:ep(?:is[oó]dio|isode)?s?)\b", re.I),
    # "Naruto 12"
    re.compile(r"(?<!\d)(\d{1,4})\s*$"),
    # "12 - The Return"
    re.compile(r"^\s*(\d{1,4})(?!\d)"),
]
ANY_INTEGER = re.compile(r"(?<!\d)(\d{1,4})(?!\d)")
LEADING_EPISODE_LABEL = re.compile(r"^\s*" + EPISODE_LABEL + r"\d+\s*[-–—:.]?\s*", re.I)


def normalize_text(value: str) -> str:
    return re.sub(r"\s+", " ", value or "").strip()


def page_origin(page_url: str) -> str:
    parsed = urlparse(page_url)
    if not parsed.scheme or not parsed.netloc:
        return ""
    return f"{parsed.scheme}://{parsed.netloc}"


def absolute_url(href: str, page_url: str) -> str:
    """Resolve ``href`` against the page's origin; unusable links become ''."""
    href = (href or "").strip()
    if not href or href.startswith("#"):
        return ""
    if href.lower().startswith(("javascript:", "mailto:", "tel:", "data:", "about:")):
        return ""

    scheme = urlparse(page_url).scheme or "https"
    if href.startswith("//"):
        return f"{scheme}:{href}"
    href_scheme = urlparse(href).scheme.lower()
    if href_scheme in ("http", "https"):
        return href
    if href_scheme:
        # blob:, ftp:, app-specific schemes are not fetchable by a caller
        return ""

    origin = page_origin(page_url)
    if not origin:
        return ""
    return urljoin(origin + "/", href)


# ---------------------------------------------------------------------------
# Selector interpreter
# ---------------------------------------------------------------------------

def _select(root: Tag, selector: str) -> List[Tag]:
    try:
        return root.select(selector)
    except Exception as e:
        # A broken selector in an operator-supplied catalog must not kill the scrape
        logger.warning(f"Invalid selector {selector!r}: {e}")
        return []


def select_elements(root: Tag, selectors: List[str]) -> List[Tag]:
    """Return the match set of the first selector that matches anything."""
    for selector in selectors:
        found = _select(root, selector)
        if found:
            logger.debug(f"Element group matched {len(found)} nodes with {selector!r}")
            return found
    return []


def read_value(node: Tag, spec: SelectorSpec) -> str:
    """Text content first (when enabled), then the spec's attributes in order."""
    if spec.text:
        text = normalize_text(node.get_text(" ", strip=True))
        if text:
            return text
    for attr in spec.attrs:
        value = node.get(attr)
        if isinstance(value, list):
            value = " ".join(value)
        if value and value.strip():
            return value.strip()
    return ""


def first_value(element: Tag, specs: List[SelectorSpec], transform: Optional[Callable[[str], str]] = None) -> str:
    """
    Evaluate ``specs`` in order against ``element`` and return the first
    non-empty value. Each spec reads only the first node it matches. When
    ``transform`` is given, a candidate only counts if it survives it.
    """
    for spec in specs:
        matches = _select(element, spec.selector)
        if not matches:
            continue
        value = read_value(matches[0], spec)
        if value and transform is not None:
            value = transform(value)
        if value:
            return value
    return ""


def all_values(element: Tag, specs: List[SelectorSpec]) -> List[str]:
    """Values of every node matched by the first spec that yields any."""
    for spec in specs:
        values = [read_value(node, spec) for node in _select(element, spec.selector)]
        values = [v for v in values if v]
        if values:
            return values
    return []


def _dedupe(values: List[str]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


# ---------------------------------------------------------------------------
# Catalog extraction
# ---------------------------------------------------------------------------

def parse_episode_count(text: str) -> Optional[int]:
    """Episode total from text that explicitly mentions episodes (1-500)."""
    for pattern in EPISODE_COUNT_PATTERNS:
        match = pattern.search(text or "")
        if not match:
            continue
        numbers = [int(g) for g in match.groups() if g]
        count = max(numbers)
        if MIN_EPISODE_COUNT <= count <= MAX_EPISODE_COUNT:
            return count
    return None


def _episode_count(element: Tag, specs: List[SelectorSpec]) -> Optional[int]:
    for spec in specs:
        for node in _select(element, spec.selector):
            count = parse_episode_count(read_value(node, spec))
            if count is not None:
                return count

    # Restrictive fallback: only an explicit "episode N" in the whole card
    match = EPISODE_COUNT_PATTERNS[2].search(normalize_text(element.get_text(" ", strip=True)))
    if match:
        count = int(match.group(1))
        if MIN_EPISODE_COUNT <= count <= MAX_EPISODE_COUNT:
            return count
    return None


def _element_link(element: Tag, specs: List[SelectorSpec], page_url: str) -> str:
    def resolve(href: str) -> str:
        return absolute_url(href, page_url)

    url = first_value(element, specs, transform=resolve)
    if url:
        return url
    if element.name == "a":
        return resolve(element.get("href", ""))
    parent = element.find_parent("a")
    if parent is not None:
        return resolve(parent.get("href", ""))
    return ""


def is_valid_catalog_entry(title: str, url: str) -> bool:
    return bool(url) and len(title) >= 2


def extract_catalog(html: str, page_url: str, site: SiteDescriptor) -> List[CatalogEntry]:
    """Turn a catalog/search page into catalog entries for ``site``."""
    soup = BeautifulSoup(html or "", "html.parser")
    selectors = site.catalog
    elements = select_elements(soup, selectors.items)[:MAX_CATALOG_ITEMS]

    results = []
    for ordinal, element in enumerate(elements, start=1):
        title = first_value(element, selectors.title)
        url = _element_link(element, selectors.link, page_url)

        if not is_valid_catalog_entry(title, url):
            logger.debug(f"Skipping card {ordinal} on {site.id}: title={title!r} url={url!r}")
            continue

        thumbnail = first_value(element, selectors.thumbnail, transform=lambda v: absolute_url(v, page_url))
        genres = _dedupe([normalize_text(g) for g in all_values(element, selectors.genres)])[:MAX_GENRES]

        results.append(CatalogEntry(
            id=f"{site.id}-{ordinal}",
            site_id=site.id,
            title=title,
            url=url,
            thumbnail=thumbnail,
            total_episodes=_episode_count(element, selectors.episodes),
            genres=genres,
        ))

    logger.debug(f"Extracted {len(results)} of {len(elements)} cards from {page_url}")
    return results


# ---------------------------------------------------------------------------
# Episode discovery
# ---------------------------------------------------------------------------

def _in_episode_range(number: int) -> bool:
    return MIN_EPISODE_NUMBER <= number <= MAX_EPISODE_NUMBER


def number_from_title(title: str) -> Optional[int]:
    """Episode number from a title: keyword-prefixed, keyword-suffixed, trailing or leading integer."""
    for pattern in EPISODE_NUMBER_PATTERNS:
        match = pattern.search(title or "")
        if match and _in_episode_range(int(match.group(1))):
            return int(match.group(1))
    return None


def number_from_text(text: str) -> Optional[int]:
    """Episode number from free text: keyword patterns first, then any integer."""
    number = number_from_title(text)
    if number is not None:
        return number
    for match in ANY_INTEGER.finditer(text or ""):
        if _in_episode_range(int(match.group(1))):
            return int(match.group(1))
    return None


def infer_episode_number(element: Tag, selectors: EpisodeSelectors, title: str, position: int) -> int:
    """
    Inference order: explicit number field (selector group or data
    attribute), the title, the element's raw text, then the 1-based position.
    """
    explicit = first_value(element, selectors.number) or element.get("data-episode") or element.get("data-ep") or ""
    match = ANY_INTEGER.search(str(explicit))
    if match and _in_episode_range(int(match.group(1))):
        return int(match.group(1))

    number = number_from_title(title)
    if number is not None:
        return number

    number = number_from_text(normalize_text(element.get_text(" ", strip=True)))
    if number is not None:
        return number

    return position


def clean_episode_title(title: str, number: int) -> str:
    cleaned = LEADING_EPISODE_LABEL.sub("", title or "").strip()
    if len(cleaned) < 2:
        return f"Episode {number}"
    return cleaned


def _is_episode_url(url: str) -> bool:
    return url.startswith(("http://", "https://")) and "javascript:" not in url.lower()


def drop_outlier_numbers(episodes: List[EpisodeEntry]) -> List[EpisodeEntry]:
    """
    Drop stray numbers (years, resolutions) from a sorted episode list.

    Only applies when the spread between the highest and lowest number is
    more than OUTLIER_SPREAD_FACTOR times the list length; then anything
    further than MAX_MEDIAN_DISTANCE from the median number goes.
    """
    if len(episodes) < 2:
        return episodes
    numbers = sorted(ep.number for ep in episodes)
    if numbers[-1] - numbers[0] <= len(episodes) * OUTLIER_SPREAD_FACTOR:
        return episodes

    median = numbers[len(numbers) // 2]
    kept = [ep for ep in episodes if abs(ep.number - median) <= MAX_MEDIAN_DISTANCE]
    logger.debug(f"Dropped {len(episodes) - len(kept)} outlier episode numbers around median {median}")
    return kept


def extract_episodes(html: str, page_url: str, anime_id: str, site_id: str,
                     selectors: EpisodeSelectors) -> List[EpisodeEntry]:
    """Episode list of one anime page, deduplicated by number and sorted ascending."""
    soup = BeautifulSoup(html or "", "html.parser")
    elements = select_elements(soup, selectors.items)

    candidates = []
    for position, element in enumerate(elements, start=1):
        url = _element_link(element, selectors.link, page_url)
        if not _is_episode_url(url):
            continue

        raw_title = first_value(element, selectors.title) or normalize_text(element.get_text(" ", strip=True))
        number = infer_episode_number(element, selectors, raw_title, position)
        thumbnail = first_value(element, selectors.thumbnail, transform=lambda v: absolute_url(v, page_url))

        candidates.append(EpisodeEntry(
            id=f"{site_id}-{anime_id}-ep-{number}",
            anime_id=anime_id,
            site_id=site_id,
            number=number,
            title=clean_episode_title(raw_title, number),
            url=url,
            thumbnail=thumbnail,
        ))

    # One entry per number; the shorter URL is usually the direct one
    candidates.sort(key=lambda ep: (ep.number, len(ep.url)))
    episodes = []
    seen_numbers = set()
    for episode in candidates:
        if episode.number in seen_numbers:
            continue
        seen_numbers.add(episode.number)
        episodes.append(episode)
    episodes = drop_outlier_numbers(episodes)

    logger.debug(f"Extracted {len(episodes)} episodes from {len(elements)} elements on {page_url}")
    return episodes
