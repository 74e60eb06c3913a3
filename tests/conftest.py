"""
Shared test fixtures for the anime scraper test suite.

Provides:
- FakePage / FakeBrowser: stand-ins for the Playwright page and the
  BrowserManager, serving canned HTML per URL (no browser needed)
- Sample catalog, episode and watch page HTML
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict, Optional

from browser import BrowserLaunchError


# ---------------------------------------------------------------------------
# Browser fakes
# ---------------------------------------------------------------------------

class FakePage:
    """Serves ``pages[url]``; an Exception value is raised from goto()."""

    def __init__(self, pages: Dict[str, object], delays: Dict[str, float], current_src: str = "",
                 redirects: Optional[Dict[str, str]] = None):
        self.pages = pages
        self.delays = delays
        self.current_src = current_src
        self.redirects = redirects or {}
        self.url = "about:blank"
        self._html = ""
        self.closed = False
        self.routes = []

    async def route(self, pattern, handler):
        self.routes.append(pattern)

    async def goto(self, url, wait_until=None, timeout=None):
        if url in self.delays:
            await asyncio.sleep(self.delays[url])
        content = self.pages.get(url)
        if isinstance(content, Exception):
            raise content
        if content is None:
            raise RuntimeError(f"net::ERR_NAME_NOT_RESOLVED at {url}")
        self._html = content
        self.url = self.redirects.get(url, url)

    async def wait_for_timeout(self, ms):
        return None

    async def content(self):
        return self._html

    async def evaluate(self, script):
        return self.current_src

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, pages: Optional[Dict[str, object]] = None, launch_failures: int = 0,
                 delays: Optional[Dict[str, float]] = None, current_src: str = "",
                 redirects: Optional[Dict[str, str]] = None):
        self.pages = pages or {}
        self.delays = delays or {}
        self.current_src = current_src
        self.redirects = redirects or {}
        self.launch_failures = launch_failures
        self.start_calls = 0
        self.close_calls = 0
        self.opened = []
        self.is_running = False

    async def start(self):
        self.start_calls += 1
        if self.launch_failures > 0:
            self.launch_failures -= 1
            raise BrowserLaunchError("Executable doesn't exist")
        self.is_running = True
        return self

    async def close(self):
        self.close_calls += 1
        self.is_running = False

    @asynccontextmanager
    async def acquire_page(self):
        await self.start()
        page = FakePage(self.pages, self.delays, self.current_src, self.redirects)
        self.opened.append(page)
        try:
            yield page
        finally:
            await page.close()


# ---------------------------------------------------------------------------
# Sample HTML
# ---------------------------------------------------------------------------

CATALOG_HTML = """
<html><body>
  <div class="anime-item">
    <a href="/anime/naruto"><img data-src="/img/naruto.jpg"><h3>Naruto</h3></a>
    <span class="episodes">220 episódios</span>
    <span class="genre">Ação</span><span class="genre">Aventura</span>
    <span class="genre">Comédia</span><span class="genre">Drama</span>
    <span class="genre">Fantasia</span><span class="genre">Shounen</span>
    <span class="genre">Artes Marciais</span>
  </div>
  <div class="anime-item">
    <a href="https://cdn.site.example/anime/one-piece"><h3>One Piece</h3></a>
  </div>
  <div class="anime-item">
    <a href="/anime/x"><h3>X</h3></a>
  </div>
  <div class="anime-item">
    <h3>Bleach</h3>
  </div>
</body></html>
"""

EPISODES_HTML = """
<html><body>
  <ul>
    <li class="episode"><a href="/watch/naruto-3">Episódio 3</a></li>
    <li class="episode"><a href="/watch/naruto-1">Episódio 1</a></li>
    <li class="episode"><a href="/watch/naruto-7">Episódio 7 - O Confronto</a></li>
    <li class="episode"><a href="/watch/naruto-2">Episódio 2</a></li>
    <li class="episode"><a href="/watch/naruto-2?source=mirror">Episódio 2</a></li>
    <li class="episode"><a href="javascript:void(0)">Episódio 9</a></li>
  </ul>
</body></html>
"""

WATCH_VIDEO_HTML = """
<html><body><video controls src="https://cdn.example/naruto-1.mp4"></video></body></html>
"""

WATCH_EMPTY_HTML = """
<html><body><p>Nothing to play here</p></body></html>
"""


def card_html(*titles: str) -> str:
    cards = "".join(
        f'<div class="anime-item"><a href="/anime/{i}"><h3>{title}</h3></a></div>'
        for i, title in enumerate(titles, start=1)
    )
    return f"<html><body>{cards}</body></html>"
