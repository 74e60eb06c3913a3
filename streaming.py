"""
Streaming URL resolution for episode watch pages.

Strategies run in a fixed order and the first one that yields a URL wins:

1. DOM probe: a native <video> (src, <source>, live currentSrc), then a
   player iframe whose src carries a known embed/host marker.
2. Inline script scan: quoted .mp4 / .m3u8 / /embed/ URLs, then a generic
   ``source: "<url>"`` pair.
3. External fallback: hand the watch page itself back, with replay headers.

resolve_stream() never raises; navigation failures end in the external
fallback with ``error`` set.
"""
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

from bs4 import BeautifulSoup

from browser import USER_AGENT, BrowserManager, load_page
from config import Config
from extraction import absolute_url, page_origin
from fallback import first_success
from models import StreamingData

logger = logging.getLogger(__name__)

# Substrings identifying player iframes, in priority order
IFRAME_MARKERS = [
    "player", "embed", "youtube", "dailymotion",
    "blogger.com", "dood", "streamtape", "mixdrop", "vidstream", "filemoon",
]

SCRIPT_URL_PATTERNS = [
    re.compile(r"""["']((?:https?:)?//[^"'\s]*?\.mp4[^"'\s]*)""", re.I),
    re.compile(r"""["']((?:https?:)?//[^"'\s]*?\.m3u8[^"'\s]*)""", re.I),
    re.compile(r"""["']((?:https?:)?//[^"'\s]*?/embed/[^"'\s]*)""", re.I),
    re.compile(r"""\bsource["'\s]*:\s*["']([^"']+)["']""", re.I),
]

VIDEO_CURRENT_SRC_JS = """() => {
    const video = document.querySelector('video');
    return video ? (video.currentSrc || video.src || '') : '';
}"""

MAX_ERROR_LENGTH = 200


@dataclass
class WatchPage:
    soup: BeautifulSoup
    url: str
    page: Optional[Any] = None


def find_video_source(soup: BeautifulSoup, page_url: str) -> str:
    """src of the first native <video>, or of its first <source>."""
    for selector, attr in (("video[src]", "src"), ("video source[src]", "src"), ("video[data-src]", "data-src")):
        for node in soup.select(selector):
            url = absolute_url(node.get(attr, ""), page_url)
            if url:
                return url
    return ""


def find_player_iframe(soup: BeautifulSoup, page_url: str) -> str:
    """First iframe whose src matches a player marker, markers tried in priority order."""
    iframes = soup.find_all("iframe")
    for marker in IFRAME_MARKERS:
        for iframe in iframes:
            src = iframe.get("src") or iframe.get("data-src") or ""
            if marker in src.lower():
                url = absolute_url(src, page_url)
                if url:
                    return url
    return ""


def scan_scripts(soup: BeautifulSoup, page_url: str) -> str:
    """First media URL found in inline scripts, scripts in document order."""
    for script in soup.find_all("script"):
        if script.get("src"):
            continue
        content = script.string or script.get_text() or ""
        if not content.strip():
            continue
        for pattern in SCRIPT_URL_PATTERNS:
            match = pattern.search(content)
            if not match:
                continue
            url = absolute_url(match.group(1), page_url)
            if url:
                return url
    return ""


def external_fallback(episode_url: str, error: Optional[str] = None) -> StreamingData:
    """The watch page itself, for callers to embed or redirect to."""
    if error and len(error) > MAX_ERROR_LENGTH:
        error = error[:MAX_ERROR_LENGTH]
    return StreamingData(
        streaming_url=episode_url,
        referer=episode_url,
        headers={"Referer": episode_url, "User-Agent": USER_AGENT},
        external=True,
        error=error,
    )


# Strategy adapters over a loaded watch page

def video_element(watch: WatchPage) -> str:
    return find_video_source(watch.soup, watch.url)


async def video_current_src(watch: WatchPage) -> str:
    # Players that attach MediaSource or set src from JS only show it live
    if watch.page is None or watch.soup.find("video") is None:
        return ""
    current = await watch.page.evaluate(VIDEO_CURRENT_SRC_JS)
    return absolute_url(current or "", watch.url)


def player_iframe(watch: WatchPage) -> str:
    return find_player_iframe(watch.soup, watch.url)


def inline_scripts(watch: WatchPage) -> str:
    return scan_scripts(watch.soup, watch.url)


STREAM_STRATEGIES = [video_element, video_current_src, player_iframe, inline_scripts]


async def resolve_from_page(watch: WatchPage) -> str:
    url = await first_success(STREAM_STRATEGIES, watch)
    return url or ""


async def resolve_stream(browser: BrowserManager, episode_url: str,
                         settle_ms: Optional[int] = None) -> StreamingData:
    """Find a playable or embeddable URL on ``episode_url``; never raises."""
    episode_url = (episode_url or "").strip()
    if not episode_url:
        return StreamingData(error="episode URL is required")

    settle_ms = Config.STREAM_SETTLE_MS if settle_ms is None else settle_ms
    logger.info(f"Resolving stream from: {episode_url}")

    try:
        async with browser.acquire_page() as page:
            html, final_url = await load_page(page, episode_url, settle_ms)
            watch = WatchPage(soup=BeautifulSoup(html, "html.parser"), url=final_url or episode_url, page=page)
            streaming_url = await resolve_from_page(watch)
    except Exception as e:
        logger.warning(f"Stream resolution failed for {episode_url}: {e}")
        return external_fallback(episode_url, error=str(e) or e.__class__.__name__)

    if not streaming_url:
        logger.info(f"No embeddable stream on {episode_url}, falling back to external page")
        return external_fallback(episode_url)

    logger.info(f"Found streaming URL on {episode_url}: {streaming_url[:80]}")
    return StreamingData(
        streaming_url=streaming_url,
        referer=watch.url,
        headers={
            "Referer": watch.url,
            "User-Agent": USER_AGENT,
            "Origin": page_origin(watch.url),
        },
        external=False,
    )
