"""Shared fakes standing in for Playwright pages, sessions and providers."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Dict, List, Optional

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from mapscraper.config import ScraperConfig


LIST_HTML = """
<html><body>
<div role="main">
  <h1>Results</h1>
  <div role="feed">
    <div><div role="article">
      <a href="https://www.google.com/maps/place/Kopi+Kenangan/data=!4m7!3m6!1s0x1:0x2!8m2!3d-6.2088!4d106.8456" aria-label="Kopi Kenangan"></a>
      <div class="fontHeadlineSmall">Kopi Kenangan</div>
      <div><span role="img" aria-label="4.6 stars 1,204 Reviews">4.6(1,204)</span></div>
      <div><span>Coffee shop</span><span> · </span><span>Jl. Sudirman No. 5, Jakarta</span></div>
      <div><span>Open</span><span> · Closes 10 PM</span></div>
      <div>Dine-in · Takeaway · Delivery</div>
    </div></div>
    <div><div role="article">
      <a href="/maps/place/Blue+Bottle/@37.7765,-122.4233,17z/data=!3d1.0!4d2.0" aria-label="Blue Bottle"></a>
      <div>Blue Bottle</div>
      <div>4.4(532) · $$</div>
      <div>Cafe</div>
      <div>315 Linden St, San Francisco</div>
    </div></div>
    <div><div>
      <a href="https://www.google.com/maps/search/coffee">More results</a>
      <div>Sponsored</div>
    </div></div>
    <div><div role="article">
      <a href="https://www.google.com/maps/place/Fore+Coffee/" aria-label="Fore Coffee"></a>
      <div>Fore Coffee</div>
      <div><span role="img" aria-label="4,3 stars">4,3(88)</span></div>
      <div>Rp 25–50 · Coffee shop</div>
    </div></div>
  </div>
</div>
</body></html>
"""


DETAIL_HTML = """
<html><body>
<div role="main">
  <div class="TIHn2">
    <h1 class="DUwDvf">Kopi Kenangan Sudirman</h1>
    <div jsaction="pane.rating.moreReviews">
      <span role="img" aria-label="4.6 stars 1,204 Reviews"></span>
      <span>(1,204)</span>
    </div>
    <button jsaction="pane.rating.category">Coffee shop</button>
  </div>
  <button data-item-id="address" aria-label="Address: Jl. Sudirman No. 5, Jakarta">Jl. Sudirman No. 5</button>
  <a data-item-id="authority" href="https://kopikenangan.com/">kopikenangan.com</a>
  <button data-item-id="phone:tel:+62215551234" aria-label="Phone: +62 21 555 1234">+62 21 555 1234</button>
</div>
</body></html>
"""


class FakePage:
    """Enough of a Playwright Page for navigation and extraction code"""

    def __init__(
        self,
        html: str = "<html><body></body></html>",
        url: str = "about:blank",
        selectors: Optional[Dict[str, bool]] = None,
        redirect: Optional[str] = None,
        counts: Optional[List[int]] = None,
        goto_error: Optional[Exception] = None,
    ):
        self.html = html
        self.url = url
        self.selectors = selectors or {}
        self.redirect = redirect
        self.counts = list(counts or [])
        self.goto_error = goto_error
        self.visited: List[str] = []
        self.evaluated: List = []
        self.closed = False

    async def goto(self, url, wait_until=None, timeout=None):
        self.visited.append(url)
        if self.goto_error is not None:
            raise self.goto_error
        self.url = self.redirect or url

    async def wait_for_selector(self, selector, timeout=None, state=None):
        if self.selectors.get(selector):
            return object()
        raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded waiting for {selector}")

    async def query_selector(self, selector):
        return object() if self.selectors.get(selector) else None

    async def eval_on_selector_all(self, selector, script):
        if len(self.counts) > 1:
            return self.counts.pop(0)
        return self.counts[0] if self.counts else 0

    async def evaluate(self, script, arg=None):
        self.evaluated.append((script, arg))
        return None

    async def content(self):
        return self.html

    async def close(self):
        self.closed = True


class FakeSession:
    def __init__(self, pages: List[FakePage], user_agent: str = "Mozilla/5.0 Chrome/120.0.0.0"):
        self.pages = list(pages)
        self.user_agent = user_agent
        self.short_user_agent = "Chrome/120.0.0.0"
        self.proxy_info = "No Proxy"
        self.shared = False
        self.opened: List[FakePage] = []
        self.closed = False

    def _next_page(self) -> FakePage:
        if len(self.pages) > 1:
            return self.pages.pop(0)
        return self.pages[0]

    @asynccontextmanager
    async def page(self):
        page = self._next_page()
        self.opened.append(page)
        try:
            yield page
        finally:
            await page.close()

    def is_connected(self):
        return not self.closed

    async def close(self):
        self.closed = True


class FakeProvider:
    """Hands out pre-built sessions in order"""

    def __init__(self, sessions: List[FakeSession]):
        self.sessions = list(sessions)
        self.launched: List[FakeSession] = []
        self.released: List[FakeSession] = []
        self.invalidated: List[FakeSession] = []
        self.closed = False

    def _next(self) -> FakeSession:
        session = self.sessions.pop(0) if len(self.sessions) > 1 else self.sessions[0]
        self.launched.append(session)
        return session

    @asynccontextmanager
    async def session(self):
        session = self._next()
        try:
            yield session
        finally:
            self.released.append(session)
            await session.close()

    async def acquire(self):
        return self._next()

    def invalidate(self, session):
        self.invalidated.append(session)

    async def close_all(self):
        self.closed = True


def disconnect_error() -> PlaywrightError:
    return PlaywrightError("Target page, context or browser has been closed")


@pytest.fixture
def config() -> ScraperConfig:
    """Config with all waits shrunk to zero so fakes run instantly"""
    return ScraperConfig(
        detect_timeout=0.01,
        feed_timeout=0.01,
        star_timeout=0.01,
        settle_delay=0,
        recheck_delay=0,
        scroll_delay_min=0,
        scroll_delay_max=0,
        max_scroll_attempts=4,
    )
