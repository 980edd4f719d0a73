"""
Navigation and page-state detection.
Opens the search URL and decides whether Maps rendered a single place,
a results list, or nothing.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .browser import NavigationTimeout, ScrapeError, SessionDisconnect, is_disconnect_error
from .config import ScraperConfig
from .models import PageMode
from .parse import FEED_SELECTOR

logger = logging.getLogger(__name__)


HEADING_SELECTOR = "h1"


@dataclass
class NavigationResult:
    mode: PageMode
    page: Any
    # Single place only found by the delayed re-check
    recovered: bool = False


def looks_like_place_url(url: Optional[str]) -> bool:
    return bool(url) and ('/maps/place/' in url or '/data=' in url)


async def goto(page, url: str, config: ScraperConfig, timeout: Optional[float] = None,
               wait_until: Optional[str] = None, request_id: str = "-"):
    """
    Navigate with an explicit timeout.

    Raises NavigationTimeout when the wait condition is not met in time; the
    page may still hold usable content, so callers decide whether to go on.
    A dead browser raises SessionDisconnect.
    """
    timeout = timeout if timeout is not None else config.navigation_timeout
    try:
        await page.goto(url, wait_until=wait_until or config.wait_until, timeout=timeout * 1000)
    except PlaywrightTimeoutError as e:
        raise NavigationTimeout(f"Navigation timed out after {timeout:.0f}s: {url}") from e
    except PlaywrightError as e:
        if is_disconnect_error(e):
            raise SessionDisconnect(str(e)) from e
        raise ScrapeError(f"Navigation to {url} failed: {e}") from e


async def _wait_for(page, selector: str, timeout: float, label):
    await page.wait_for_selector(selector, timeout=timeout * 1000)
    return label


async def race_selectors(page, candidates, timeout: float):
    """
    Wait for several selectors at once and return the label of the first
    one that appears, or None if none did before the timeout.
    """
    tasks = [
        asyncio.ensure_future(_wait_for(page, selector, timeout, label))
        for selector, label in candidates
    ]
    winner = None
    pending = set(tasks)
    try:
        while pending and winner is None:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                exc = task.exception()
                if exc is None:
                    if winner is None:
                        winner = task.result()
                elif is_disconnect_error(exc):
                    raise SessionDisconnect(str(exc)) from exc
    finally:
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
    return winner


async def _has(page, selector: str) -> bool:
    try:
        return await page.query_selector(selector) is not None
    except PlaywrightError as e:
        if is_disconnect_error(e):
            raise SessionDisconnect(str(e)) from e
        return False


async def detect(page, query: str, config: ScraperConfig, request_id: str = "-") -> NavigationResult:
    """Navigate to the search for `query` and classify the rendered page"""
    url = config.search_url(query)
    logger.info(f"[{request_id}] Navigating to: {url}")
    try:
        await goto(page, url, config, request_id=request_id)
    except NavigationTimeout as e:
        logger.warning(f"[{request_id}] {e}, detecting on the partially loaded page")

    mode = await race_selectors(
        page,
        [(FEED_SELECTOR, PageMode.LIST), (HEADING_SELECTOR, PageMode.SINGLE)],
        config.detect_timeout,
    )

    if mode is PageMode.LIST:
        logger.info(f"[{request_id}] Found results feed")
        return NavigationResult(PageMode.LIST, page)

    if mode is PageMode.SINGLE:
        # List pages carry a heading too; the feed settles it
        if await _has(page, FEED_SELECTOR):
            return NavigationResult(PageMode.LIST, page)
        if looks_like_place_url(page.url):
            logger.info(f"[{request_id}] Single result detected")
            return NavigationResult(PageMode.SINGLE, page)

    # Neither settled in time; some single-place pages render late
    await asyncio.sleep(config.recheck_delay)
    if await _has(page, FEED_SELECTOR):
        logger.info(f"[{request_id}] Found results feed on re-check")
        return NavigationResult(PageMode.LIST, page)
    if await _has(page, HEADING_SELECTOR):
        logger.info(f"[{request_id}] Single result detected on re-check")
        return NavigationResult(PageMode.SINGLE, page, recovered=True)

    logger.info(f"[{request_id}] No results for query")
    return NavigationResult(PageMode.EMPTY, page)


async def zoom_out(page, factor: float = 0.5):
    """Shrink the page so each scroll step reveals more cards"""
    try:
        await page.evaluate(
            """(zoom) => {
                document.documentElement.style.zoom = zoom;
                document.body.style.zoom = zoom;
            }""",
            str(factor),
        )
    except PlaywrightError as e:
        if is_disconnect_error(e):
            raise SessionDisconnect(str(e)) from e
        logger.debug(f"Zoom-out failed: {e}")
