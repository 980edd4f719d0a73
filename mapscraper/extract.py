"""
Page-level extraction: gets a rendered page into a parseable state and hands
its HTML to the matching layout parser.
"""
import asyncio
import logging
from typing import List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .browser import BrowserSession, NavigationTimeout, ScrapeError, SessionDisconnect, is_disconnect_error
from .config import ScraperConfig
from .models import PlaceRecord
from .navigate import goto
from .parse import get_parser

logger = logging.getLogger(__name__)


STAR_SELECTOR = '[role="img"][aria-label*="star"]'


async def page_html(page) -> str:
    try:
        return await page.content()
    except PlaywrightError as e:
        if is_disconnect_error(e):
            raise SessionDisconnect(str(e)) from e
        raise ScrapeError(f"Could not read page content: {e}") from e


async def extract_list(page, config: ScraperConfig, limit: Optional[int] = None,
                       request_id: str = "-") -> List[PlaceRecord]:
    """Fast mode: records straight from the feed cards"""
    html = await page_html(page)
    return get_parser("list", strict=config.strict, request_id=request_id).parse(html, limit=limit)


async def collect_place_urls(page, config: ScraperConfig, limit: Optional[int] = None,
                            request_id: str = "-") -> List[str]:
    """Detailed mode: the feed's detail-page URLs, in feed order"""
    html = await page_html(page)
    return get_parser("list", strict=config.strict, request_id=request_id).place_urls(html, limit=limit)


async def extract_detail(page, config: ScraperConfig, request_id: str = "-",
                         sleep=asyncio.sleep) -> PlaceRecord:
    """Wait for the detail panel to hydrate, then parse it"""
    try:
        await page.wait_for_selector(STAR_SELECTOR, timeout=config.star_timeout * 1000, state="visible")
    except PlaywrightTimeoutError:
        logger.debug(f"[{request_id}] Rating stars not visible, extracting anyway")
    except PlaywrightError as e:
        if is_disconnect_error(e):
            raise SessionDisconnect(str(e)) from e
        logger.debug(f"[{request_id}] Waiting for rating stars failed: {e}")

    # Review counts and contact rows hydrate late
    await sleep(config.settle_delay)

    try:
        await page.evaluate("() => window.scrollBy(0, 300)")
    except PlaywrightError as e:
        if is_disconnect_error(e):
            raise SessionDisconnect(str(e)) from e

    html = await page_html(page)
    return get_parser("detail", strict=config.strict, request_id=request_id).parse_place(html, page.url)


async def scrape_place(session: BrowserSession, url: str, config: ScraperConfig,
                       request_id: str = "-") -> Optional[PlaceRecord]:
    """
    Open one place URL in its own page and extract it.

    Returns None on a per-place failure; a dead session raises SessionDisconnect.
    """
    async with session.page() as page:
        try:
            try:
                await goto(page, url, config, wait_until=config.detail_wait_until, request_id=request_id)
            except NavigationTimeout as e:
                logger.warning(f"[{request_id}] {e}, extracting from the partially loaded page")
            return await extract_detail(page, config, request_id)
        except SessionDisconnect:
            raise
        except (ScrapeError, PlaywrightError) as e:
            if is_disconnect_error(e):
                raise SessionDisconnect(str(e)) from e
            logger.warning(f"[{request_id}] Error scraping {url}: {e}")
            return None
