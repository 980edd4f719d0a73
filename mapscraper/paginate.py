"""
Scroll-driven pagination of the results feed.
"""
import asyncio
import logging
import random

from playwright.async_api import Error as PlaywrightError

from .browser import SessionDisconnect, is_disconnect_error
from .config import ScraperConfig
from .parse import CARD_LINK_SELECTOR

logger = logging.getLogger(__name__)


# Consecutive scrolls without new items before giving up
SATURATION_ROUNDS = 2

COUNT_SCRIPT = "els => new Set(els.map(el => el.href)).size"

SCROLL_SCRIPT = """(delta) => {
    const feed = document.querySelector('div[role="feed"]');
    if (feed) {
        feed.scrollTop = feed.scrollHeight;
        return true;
    }
    const target = document.scrollingElement || document.body;
    target.scrollBy(0, delta);
    return false;
}"""


async def count_items(page) -> int:
    """Number of distinct place links currently in the feed"""
    return await page.eval_on_selector_all(CARD_LINK_SELECTOR, COUNT_SCRIPT)


async def expand(page, target_count: int, config: ScraperConfig, request_id: str = "-",
                 sleep=asyncio.sleep, rng=random) -> int:
    """
    Scroll the feed until it holds target_count items, stops growing,
    or max_scroll_attempts is spent. Returns the final item count.

    Runs strictly sequentially: scrolling mutates the page's scroll state.
    """
    previous = -1
    stalls = 0
    count = 0

    for attempt in range(config.max_scroll_attempts):
        try:
            count = await count_items(page)
        except PlaywrightError as e:
            if is_disconnect_error(e):
                raise SessionDisconnect(str(e)) from e
            logger.warning(f"[{request_id}] Could not count feed items: {e}")
            break

        if count >= target_count:
            logger.info(f"[{request_id}] Found {count} items (target: {target_count})")
            break

        if count <= previous:
            stalls += 1
            if stalls >= SATURATION_ROUNDS:
                logger.info(f"[{request_id}] Feed saturated at {count} items (target: {target_count})")
                break
        else:
            stalls = 0
        previous = count

        logger.info(f"[{request_id}] Scroll #{attempt + 1}: {count} items...")
        try:
            await page.evaluate(SCROLL_SCRIPT, 220 + rng.randint(0, 180))
        except PlaywrightError as e:
            if is_disconnect_error(e):
                raise SessionDisconnect(str(e)) from e
            logger.debug(f"[{request_id}] Scroll failed: {e}")

        await sleep(config.get_scroll_delay(rng))

    return count
